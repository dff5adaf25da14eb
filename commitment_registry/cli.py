#!/usr/bin/env python3
import argparse
import json
import logging
import sys

from commitment_registry.config import RegistryConfig
from commitment_registry.errors import InputError, RegistryError
from commitment_registry.hashing import from_hex, to_hex
from commitment_registry.indexer import TreeIndexer
from commitment_registry.registry import AccountRegistry
from commitment_registry.signing import load_or_create_signing_key, load_verify_key
from commitment_registry.store import EventStore


logger = logging.getLogger("commitment_registry")


def parse_int(value: str) -> int:
    """Accept decimal or 0x-prefixed hex."""
    try:
        return int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Commitment Registry CLI - incremental Merkle tree of identity commitments")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_init = subparsers.add_parser("init", help="Create an empty registry")
    p_init.add_argument("--depth", type=int, help="Tree depth (default from config)")
    p_init.add_argument("--window", type=int, help="Root validity window in seconds")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing registry state")

    # --- Mutations ---
    p_add = subparsers.add_parser("add", help="Add one commitment")
    p_add.add_argument("commitment", type=parse_int)

    p_batch = subparsers.add_parser("add-batch", help="Add several commitments with one root")
    p_batch.add_argument("commitments", type=parse_int, nargs="+")

    p_update = subparsers.add_parser("update", help="Replace an account's commitment")
    p_update.add_argument("account_index", type=int)
    p_update.add_argument("old_commitment", type=parse_int)
    p_update.add_argument("new_commitment", type=parse_int)

    p_remove = subparsers.add_parser("remove", help="Zero an account's commitment")
    p_remove.add_argument("account_index", type=int)
    p_remove.add_argument("commitment", type=parse_int)

    p_window = subparsers.add_parser("set-window", help="Set the root validity window")
    p_window.add_argument("seconds", type=int)

    # --- Queries ---
    subparsers.add_parser("root", help="Show the current root")

    p_proof = subparsers.add_parser("proof", help="Print an inclusion proof as JSON")
    p_proof.add_argument("account_index", type=int)

    p_verify = subparsers.add_parser("verify", help="Verify a proof JSON file statelessly")
    p_verify.add_argument("proof_file")

    p_valid = subparsers.add_parser("is-valid-root", help="Check a root against the validity window")
    p_valid.add_argument("root", type=parse_int)

    p_roots = subparsers.add_parser("roots", help="List recorded roots")
    p_roots.add_argument("--limit", type=int, default=20)

    subparsers.add_parser("stats", help="Show registry counters")
    subparsers.add_parser("verify-integrity", help="Check root signatures and replayed root")
    return parser


def open_store(config: RegistryConfig) -> EventStore:
    signing_key = load_or_create_signing_key(config.signing_key_path) if config.signing_key_path else None
    return EventStore(config.db_path, signing_key=signing_key)


def load_registry(store: EventStore) -> AccountRegistry:
    registry = AccountRegistry.from_dict(store.load_state())
    registry.events.subscribe(store.handle)
    return registry


def load_indexer(registry: AccountRegistry, store: EventStore) -> TreeIndexer:
    indexer = TreeIndexer(depth=registry.get_depth(), hasher=registry.hasher)
    indexer.load_accounts(store.accounts())
    return indexer


def load_proof_file(path: str) -> dict:
    """Read a proof written by the proof command."""
    try:
        with open(path, "r") as f:
            data = json.load(f)
        return {
            "root": from_hex(data["root"]),
            "leaf": from_hex(data["commitment"]),
            "siblings": [from_hex(s) for s in data["siblings"]],
            "index": data["tree_index"],
            "depth": data["depth"],
        }
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise InputError(f"Cannot read proof file {path}", cause=e) from e


def run(args, config: RegistryConfig) -> int:
    store = open_store(config)

    if args.command == "init":
        if store.has_state() and not args.force:
            print(f"Registry already initialized at {config.db_path} (use --force)")
            return 1
        registry = AccountRegistry(
            depth=args.depth if args.depth is not None else config.depth,
            root_validity_window=args.window if args.window is not None else config.root_validity_window,
        )
        # drop audit rows of any replaced registry
        store.reset()
        store.save_state(registry.state.to_dict())
        print(f"Initialized registry (depth {registry.get_depth()}) at {config.db_path}")
        print(f"Empty root: {to_hex(registry.get_root())}")
        return 0

    registry = load_registry(store)

    if args.command == "add":
        index = registry.add_one(args.commitment)
        print(f"Added account {index}, root {to_hex(registry.get_root())}")

    elif args.command == "add-batch":
        indices = registry.add_batch(args.commitments)
        print(f"Added accounts {indices[0]}..{indices[-1]}, root {to_hex(registry.get_root())}")

    elif args.command in ("update", "remove"):
        proof = load_indexer(registry, store).proof(args.account_index)
        if args.command == "update":
            registry.update(args.account_index, args.old_commitment, args.new_commitment, proof.siblings)
            print(f"Updated account {args.account_index}, root {to_hex(registry.get_root())}")
        else:
            registry.remove(args.account_index, args.commitment, proof.siblings)
            print(f"Removed account {args.account_index}, root {to_hex(registry.get_root())}")

    elif args.command == "set-window":
        old = registry.get_root_validity_window()
        registry.set_root_validity_window(args.seconds)
        print(f"Root validity window: {old}s -> {args.seconds}s")

    elif args.command == "root":
        print(to_hex(registry.get_root()))
        return 0

    elif args.command == "proof":
        proof = load_indexer(registry, store).proof(args.account_index)
        print(json.dumps(proof.to_dict(), indent=2))
        return 0

    elif args.command == "verify":
        valid = registry.verify_proof_stateless(**load_proof_file(args.proof_file))
        print("Proof VALID" if valid else "Proof INVALID")
        return 0 if valid else 2

    elif args.command == "is-valid-root":
        valid = registry.is_valid_root(args.root)
        print("VALID" if valid else "INVALID")
        return 0 if valid else 2

    elif args.command == "roots":
        for r in store.roots(limit=args.limit):
            signed = "signed" if r["signature"] else "unsigned"
            print(f"Epoch {r['epoch']:6} | {r['timestamp']} | {r['root']} | {signed}")
        return 0

    elif args.command == "stats":
        stats = store.stats()
        stats.update({
            "depth": registry.get_depth(),
            "number_of_leaves": registry.get_number_of_leaves(),
            "next_account_index": registry.get_total_accounts(),
            "root_validity_window": registry.get_root_validity_window(),
        })
        print(json.dumps(stats, indent=2))
        return 0

    elif args.command == "verify-integrity":
        all_valid = True
        if config.signing_key_path:
            vk = load_verify_key(config.signing_key_path)
            for epoch, valid in store.verify_root_signatures(vk):
                if not valid:
                    print(f"Epoch {epoch:6} | INVALID signature")
                    all_valid = False
        replayed = load_indexer(registry, store).root
        if replayed != registry.get_root():
            print("TAMPER DETECTED: replayed root differs from registry root")
            all_valid = False
        if all_valid:
            print("Audit trail intact.")
        return 0 if all_valid else 2

    store.save_state(registry.state.to_dict())
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = RegistryConfig.from_env()
    except RegistryError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        return run(args, config)
    except RegistryError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
