#!/usr/bin/env python3
"""
Category Hub - CLI Entry Point

Command-line interface for the cross-shop category mapping engine.
Synchronizes category snapshots, resolves and edits canonical-to-shop
mappings, asks the AI for mapping suggestions and reports products whose
default category is inconsistent. Results are printed as JSON on stdout.
"""

import argparse
import sys
import os
import json
import logging
from pathlib import Path

# Add current directory to path for imports
sys.path.insert(0, os.path.dirname(__file__))

from category_hub.config import (
    load_config,
    setup_logging,
    SCRIPT_VERSION
)
from category_hub.default_category import DefaultCategoryValidator, REASONS
from category_hub.errors import CategoryHubError, ShopNotFoundError
from category_hub.mapping_store import MappingStore
from category_hub.models import Product, Shop
from category_hub.repository import CategoryRepository, new_id
from category_hub.suggestions import SuggestionReconciler
from category_hub.tree_sync import TreeSynchronizer
from category_hub.tree_view import build_trees, resolve_master_shop


def print_status(message):
    """Print status message (stderr, so stdout stays valid JSON)."""
    print(f"[STATUS] {message}", file=sys.stderr)


def emit(data):
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def read_json(path):
    input_path = Path(path)
    if not input_path.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")
    with open(input_path, "r", encoding="utf-8") as f:
        return json.load(f)


def require_shop(repo, shop_id):
    shop = repo.get_shop(shop_id)
    if shop is None:
        raise ShopNotFoundError(f"Shop not found: {shop_id}")
    return shop


def master_for(repo, args, config):
    return resolve_master_shop(repo, args.master or config.get("MASTER_SHOP_ID"))


# ============================================================================
# COMMANDS
# ============================================================================

def cmd_add_shop(repo, args, config):
    shop = repo.add_shop(Shop(id=args.id, name=args.name, is_master=args.master_shop))
    print_status(f"Saved shop {shop.id} '{shop.name}'{' (master)' if shop.is_master else ''}")
    emit(shop.to_dict())
    return True


def cmd_sync(repo, args, config):
    shop = require_shop(repo, args.shop)
    payload = read_json(args.payload)
    result = TreeSynchronizer(repo).sync(payload, shop, status_fn=print_status)
    emit(result.to_dict())
    return True


def cmd_import_products(repo, args, config):
    shop = require_shop(repo, args.shop)
    data = read_json(args.file)

    # Handle both {"products": [...]} and [...] formats
    if isinstance(data, dict) and "products" in data:
        items = data["products"]
    elif isinstance(data, list):
        items = data
    else:
        raise ValueError("Input JSON must be array of products or {\"products\": [...]}")

    imported = 0
    for item in items:
        if not isinstance(item, dict) or not item.get("sku"):
            logging.warning(f"Skipping product without SKU: {item!r}")
            continue
        item = dict(item, shop_id=shop.id)
        item.setdefault("id", new_id())
        repo.add_product(Product.from_dict(item))
        imported += 1

    print_status(f"Imported {imported} products into shop {shop.id}")
    emit({"imported": imported})
    return True


def cmd_resolve(repo, args, config):
    shop = require_shop(repo, args.shop)
    emit(MappingStore(repo).resolve(args.guids, shop))
    return False


def cmd_tree(repo, args, config):
    emit(build_trees(repo, args.target, args.master or config.get("MASTER_SHOP_ID")))
    return False


def cmd_suggest(repo, args, config):
    master = master_for(repo, args, config)
    target = require_shop(repo, args.target)

    reconciler = SuggestionReconciler(repo, config)
    suggestions = reconciler.suggest(
        master,
        target,
        include_mapped=args.include_mapped,
        instructions=args.instructions,
        apply=not args.dry_run,
        status_fn=print_status
    )
    emit(suggestions)
    return not args.dry_run


def cmd_confirm(repo, args, config):
    mapping = MappingStore(repo).confirm(args.category_node_id, args.shop_category_node_id, args.notes)
    emit(mapping.to_dict())
    return True


def cmd_reject(repo, args, config):
    mapping = MappingStore(repo).reject(args.category_node_id, args.shop, args.notes)
    emit(mapping.to_dict())
    return True


def cmd_validate(repo, args, config):
    master = master_for(repo, args, config)
    target = require_shop(repo, args.target)

    validator = DefaultCategoryValidator(repo, chunk_size=config.get("VALIDATION_CHUNK_SIZE") or 100)
    report = validator.validate(
        master,
        target,
        page=args.page,
        per_page=args.per_page or config.get("VALIDATION_PER_PAGE") or 50,
        search=args.search,
        reasons=args.reason,
        all=args.all
    )
    emit(report)
    return False


def build_parser():
    parser = argparse.ArgumentParser(
        description="Category Hub - cross-shop category mapping and sync",
        epilog=f"Version {SCRIPT_VERSION}"
    )
    parser.add_argument("--data-file", help="Path to the repository JSON file (default: DATA_FILE)")
    parser.add_argument("--log-file", help="Path to log file")
    parser.add_argument(
        "--provider",
        choices=["claude", "openai"],
        help="AI provider to use (default: AI_PROVIDER from config.json)"
    )
    parser.add_argument("--claude-api-key", help="Claude API key (or set CLAUDE_API_KEY env var)")
    parser.add_argument("--openai-api-key", help="OpenAI API key (or set OPENAI_API_KEY env var)")
    parser.add_argument("--verbose", action="store_true", help="Verbose output")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add-shop", help="Register or update a shop")
    p.add_argument("--id", type=int, required=True)
    p.add_argument("--name", required=True)
    p.add_argument("--master", dest="master_shop", action="store_true", help="Shop owns the canonical tree")
    p.set_defaults(func=cmd_add_shop)

    p = sub.add_parser("sync", help="Synchronize a category snapshot JSON file")
    p.add_argument("--shop", type=int, required=True)
    p.add_argument("payload", help="Snapshot JSON file")
    p.set_defaults(func=cmd_sync)

    p = sub.add_parser("import-products", help="Import master products with storefront overlays")
    p.add_argument("--shop", type=int, required=True, help="Master shop owning the products")
    p.add_argument("file", help="Products JSON file")
    p.set_defaults(func=cmd_import_products)

    p = sub.add_parser("resolve", help="Show how canonical GUIDs map into a shop")
    p.add_argument("--shop", type=int, required=True)
    p.add_argument("guids", nargs="+")
    p.set_defaults(func=cmd_resolve)

    p = sub.add_parser("tree", help="Print canonical and shop trees with mapping status")
    p.add_argument("--target", type=int)
    p.add_argument("--master", type=int)
    p.set_defaults(func=cmd_tree)

    p = sub.add_parser("suggest", help="Ask the AI for mapping suggestions")
    p.add_argument("--target", type=int, required=True)
    p.add_argument("--master", type=int)
    p.add_argument("--include-mapped", action="store_true", help="Re-suggest confirmed categories too")
    p.add_argument("--instructions", help="Extra instructions for the AI")
    p.add_argument("--dry-run", action="store_true", help="Do not write suggestions")
    p.set_defaults(func=cmd_suggest)

    p = sub.add_parser("confirm", help="Manually confirm a mapping")
    p.add_argument("category_node_id")
    p.add_argument("shop_category_node_id")
    p.add_argument("--notes")
    p.set_defaults(func=cmd_confirm)

    p = sub.add_parser("reject", help="Manually reject a mapping")
    p.add_argument("category_node_id")
    p.add_argument("--shop", type=int, required=True)
    p.add_argument("--notes")
    p.set_defaults(func=cmd_reject)

    p = sub.add_parser("validate", help="Report inconsistent product default categories")
    p.add_argument("--target", type=int, required=True)
    p.add_argument("--master", type=int)
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--per-page", type=int)
    p.add_argument("--search")
    p.add_argument("--reason", action="append", choices=REASONS, help="Only list this reason (repeatable)")
    p.add_argument("--all", action="store_true", help="Disable pagination")
    p.set_defaults(func=cmd_validate)

    return parser


def main(argv=None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Load config (use default if not exists, then override with CLI args)
    try:
        config = load_config()
    except Exception:
        # No config file, use defaults
        config = {}

    if args.provider:
        config["AI_PROVIDER"] = args.provider
    if args.claude_api_key:
        config["CLAUDE_API_KEY"] = args.claude_api_key
    if args.openai_api_key:
        config["OPENAI_API_KEY"] = args.openai_api_key
    config["CLAUDE_API_KEY"] = config.get("CLAUDE_API_KEY") or os.getenv("CLAUDE_API_KEY", "")
    config["OPENAI_API_KEY"] = config.get("OPENAI_API_KEY") or os.getenv("OPENAI_API_KEY", "")

    # Setup logging
    log_file = args.log_file or config.get("LOG_FILE") or "category_hub.log"
    verbose = args.verbose or config.get("VERBOSE")
    setup_logging(log_file, logging.DEBUG if verbose else logging.WARNING, stream=sys.stderr)

    data_file = args.data_file or config.get("DATA_FILE")
    repo = CategoryRepository.load(data_file)

    try:
        changed = args.func(repo, args, config)
    except (CategoryHubError, OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if changed:
        try:
            repo.save(data_file)
        except OSError as e:
            print(f"ERROR: Failed to save repository: {e}", file=sys.stderr)
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
