"""
Pytest configuration and shared fixtures for Category Hub tests.
"""

import sys
import pytest
import json
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from category_hub.models import Shop, Product
from category_hub.repository import CategoryRepository
from category_hub.tree_sync import TreeSynchronizer


# ============================================================================
# SAMPLE DATA FIXTURES
# ============================================================================

@pytest.fixture
def master_shop():
    """Master shop owning the canonical tree."""
    return Shop(id=1, name="Master CZ", is_master=True)


@pytest.fixture
def target_shop():
    """Storefront that gets mapped onto the canonical tree."""
    return Shop(id=2, name="Shop SK")


@pytest.fixture
def master_payload():
    """Master category snapshot (canonical tree)."""
    return {
        "categories": [
            {"guid": "gp1", "name": "Vánoce", "friendlyUrl": "vanoce", "position": 1},
            {"guid": "gp2", "name": "Narozeniny", "friendlyUrl": "narozeniny", "position": 2},
            {"guid": "gd1", "name": "Dárky", "parentGuid": "gp1", "friendlyUrl": "vanoce-darky", "position": 1},
            {"guid": "gd2", "name": "Dárky", "parentGuid": "gp2", "friendlyUrl": "narozeniny-darky", "position": 1},
            {"guid": "g1", "name": "Perfumes", "friendlyUrl": "perfumes", "position": 3},
        ],
        "allCategories": [
            [
                {"guid": "g1a", "name": "Women", "parentGuid": "g1", "friendlyUrl": "perfumes-women", "position": 1},
                {"guid": "g1b", "name": "Men", "parentGuid": "g1", "friendlyUrl": "perfumes-men", "position": 2},
            ]
        ],
    }


@pytest.fixture
def shop_payload():
    """Target storefront snapshot, children listed before their parents."""
    return {
        "categories": [
            {
                "guid": "s-women",
                "name": "Dámske",
                "parentGuid": "g1",
                "friendlyUrl": "perfumes-women",
                "position": 1,
                "metaTagDescription": "Dámske parfumy",
            },
            {"guid": "s-gifts", "name": "Dárky", "parentGuid": "gp2", "friendlyUrl": "darceky", "position": 5},
            {"guid": "g1", "name": "Parfémy", "friendlyUrl": "parfemy", "position": 1, "visible": True},
        ],
        "defaultCategory": {"guid": "s-beauty", "name": "Kozmetika", "friendlyUrl": "kozmetika", "position": 2},
    }


@pytest.fixture
def repo(master_shop, target_shop):
    """Empty repository with both shops registered."""
    repository = CategoryRepository()
    repository.add_shop(master_shop)
    repository.add_shop(target_shop)
    return repository


@pytest.fixture
def synced_repo(repo, master_shop, target_shop, master_payload, shop_payload):
    """Repository with the master and the target snapshot synchronized."""
    synchronizer = TreeSynchronizer(repo)
    synchronizer.sync(master_payload, master_shop)
    synchronizer.sync(shop_payload, target_shop)
    return repo


@pytest.fixture
def make_product():
    """Factory for master products with a storefront overlay for shop 2."""
    def _make(sku, master_guid="g1a", overlay=None, codes=None):
        base = {"name": f"Product {sku}"}
        if master_guid:
            base["defaultCategory"] = {"guid": master_guid, "name": "Master default"}
        overlays = {} if overlay is None else {"2": overlay}
        return Product(
            id=f"p-{sku}",
            shop_id=1,
            sku=sku,
            base_payload=base,
            variant_codes=codes or [f"{sku}-1"],
            overlays=overlays,
        )
    return _make


# ============================================================================
# TEMPORARY FILE FIXTURES
# ============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir):
    """Create a temporary config.json file."""
    config_path = temp_dir / "config.json"
    config_data = {
        "AI_PROVIDER": "claude",
        "CLAUDE_API_KEY": "test_claude_key_12345",
        "CLAUDE_MODEL": "claude-sonnet-4-5-20250929",
        "OPENAI_API_KEY": "test_openai_key_67890",
        "OPENAI_MODEL": "gpt-4o-mini",
        "DATA_FILE": str(temp_dir / "category_hub.json"),
        "LOG_FILE": str(temp_dir / "test.log"),
        "MASTER_SHOP_ID": 1
    }
    with open(config_path, 'w') as f:
        json.dump(config_data, f, indent=4)
    return config_path


# ============================================================================
# MOCK API FIXTURES
# ============================================================================

@pytest.fixture
def sample_ai_mapping_response():
    """Sample AI mapping plan."""
    return {
        "mappings": [
            {
                "canonical_id": "c-women",
                "target_id": "t-women",
                "confidence": 0.91,
                "reason": "Same hierarchy, translated name"
            }
        ]
    }


@pytest.fixture
def mock_claude_response(sample_ai_mapping_response):
    """Mock Claude API response."""
    class MockResponse:
        def __init__(self):
            self.id = "msg_test123"
            self.model = "claude-sonnet-4-5-20250929"
            self.content = [
                type('obj', (object,), {
                    'text': json.dumps(sample_ai_mapping_response)
                })
            ]
            self.usage = type('obj', (object,), {
                'input_tokens': 500,
                'output_tokens': 200
            })
            self.stop_reason = 'end_turn'

    return MockResponse()


@pytest.fixture
def mock_openai_response(sample_ai_mapping_response):
    """Mock OpenAI API response."""
    class MockResponse:
        def __init__(self):
            self.id = "chatcmpl-test123"
            self.model = "gpt-4o-mini"
            self.choices = [
                type('obj', (object,), {
                    'message': type('obj', (object,), {
                        'content': json.dumps(sample_ai_mapping_response)
                    }),
                    'finish_reason': 'stop'
                })
            ]
            self.usage = type('obj', (object,), {
                'prompt_tokens': 500,
                'completion_tokens': 200,
                'total_tokens': 700
            })

    return MockResponse()


# ============================================================================
# UTILITY FIXTURES
# ============================================================================

@pytest.fixture
def capture_logs(caplog):
    """Capture log output for testing."""
    import logging
    caplog.set_level(logging.DEBUG)
    return caplog


@pytest.fixture
def mock_status_fn():
    """Mock status function that collects status messages."""
    messages = []

    def status_fn(msg):
        messages.append(msg)

    status_fn.messages = messages
    return status_fn


@pytest.fixture
def restore_logging():
    """Drop handlers installed by setup_logging() and restore the excepthook."""
    import logging
    handlers = logging.root.handlers[:]
    level = logging.root.level
    hook = sys.excepthook
    yield
    for h in logging.root.handlers[:]:
        if h not in handlers:
            logging.root.removeHandler(h)
            h.close()
    logging.root.setLevel(level)
    sys.excepthook = hook
