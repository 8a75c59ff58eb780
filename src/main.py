"""
Command line entry point for the Batch QA Tracker.

Every command prints one JSON document to stdout. Service errors are printed
as {"success": false, "error": <kind>, "message": ..., "details": ...} and
the process exits with status 1.

Usage Examples:
    # Create tables
    python -m src.main init-db

    # Scale recipe 3 to a 25 kg input
    python -m src.main scale-recipe 3 25

    # Record a passed checkpoint with a measurement
    python -m src.main record-check 12 4 passed --measure temperature_c=3.5 --actor op-7

    # Progress and completion
    python -m src.main progress 12
    python -m src.main complete-batch 12 --actor qa-lead

    # Allocate lots to a batch ingredient, recall a lot, trace a batch
    python -m src.main allocate 40 --quantity 150
    python -m src.main recall-lot 8 --reason contamination --actor qa-lead --role manager
    python -m src.main trace-batch 12

    # Release decisions (manager or admin)
    python -m src.main release approve 12 --actor boss --role manager
    python -m src.main release hold 12 --reason "lab retest" --actor boss --role manager
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from src.services import lot_service, qa_service, recipe_service, release_service
from src.services.database import initialize_app_database
from src.services.exceptions import ServiceError, ValidationError
from src.services.identity import Actor
from src.utils.config import get_config


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _error_payload(error: ServiceError) -> Dict[str, Any]:
    return {
        "success": False,
        "error": error.kind,
        "message": str(error),
        "details": error.details(),
    }


def _actor(args) -> Optional[Actor]:
    if not getattr(args, "actor", None):
        return None
    try:
        return Actor(args.actor, args.role)
    except ValueError as e:
        raise ValidationError([str(e)])


def parse_measurements(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Turn ["temperature_c=3.5", ...] into a dict; values stay strings."""
    measurements = {}
    errors = []
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            errors.append(f"Measurement '{pair}' must look like field=value")
            continue
        measurements[key.strip()] = value.strip()
    if errors:
        raise ValidationError(errors)
    return measurements


# ============================================================================
# Commands
# ============================================================================


def cmd_init_db(args) -> Dict[str, Any]:
    initialize_app_database()
    return {"success": True, "database_url": get_config().database_url}


def cmd_scale_recipe(args) -> Dict[str, Any]:
    return recipe_service.scale_recipe_by_id(args.recipe_id, args.input_weight)


def cmd_record_check(args) -> Dict[str, Any]:
    return qa_service.record_check(
        args.batch_id,
        args.checkpoint_id,
        args.status,
        measurements=parse_measurements(args.measure),
        actor=_actor(args),
        notes=args.notes,
        corrective_action=args.corrective_action,
        recheck_required=args.recheck_required,
    )


def cmd_progress(args) -> Dict[str, Any]:
    return qa_service.get_progress(args.batch_id)


def cmd_complete_batch(args) -> Dict[str, Any]:
    return qa_service.complete_batch(args.batch_id, actor=_actor(args))


def cmd_allocate(args) -> Dict[str, Any]:
    return lot_service.allocate_lots(
        args.batch_ingredient_id, quantity_needed=args.quantity, actor=_actor(args)
    )


def cmd_recall_lot(args) -> Dict[str, Any]:
    return lot_service.recall_lot(args.lot_id, args.reason, notes=args.notes, actor=_actor(args))


def cmd_trace_batch(args) -> Dict[str, Any]:
    return lot_service.get_batch_traceability(args.batch_id)


def cmd_release(args) -> Dict[str, Any]:
    actor = _actor(args)
    if args.action == "approve":
        return release_service.approve_release(args.batch_id, actor, notes=args.notes)
    if args.action == "reject":
        return release_service.reject_release(args.batch_id, actor, args.reason, notes=args.notes)
    if args.action == "hold":
        return release_service.hold_release(args.batch_id, actor, args.reason, notes=args.notes)
    if args.action == "release-hold":
        return release_service.release_hold(args.batch_id, actor, notes=args.notes)
    if args.action == "show":
        return release_service.get_release(args.batch_id)
    raise ValidationError([f"Unknown release action '{args.action}'"])


COMMANDS = {
    "init-db": cmd_init_db,
    "scale-recipe": cmd_scale_recipe,
    "record-check": cmd_record_check,
    "progress": cmd_progress,
    "complete-batch": cmd_complete_batch,
    "allocate": cmd_allocate,
    "recall-lot": cmd_recall_lot,
    "trace-batch": cmd_trace_batch,
    "release": cmd_release,
}


def _add_actor_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--actor", help="Actor id recorded for audit")
    parser.add_argument(
        "--role",
        choices=["user", "manager", "admin"],
        default="user",
        help="Actor role (default: user)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subparser per command."""
    parser = argparse.ArgumentParser(
        prog="batch-qa",
        description="Batch QA progression, lot traceability and release tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create database tables")

    scale_parser = subparsers.add_parser("scale-recipe", help="Scale a recipe to an input weight")
    scale_parser.add_argument("recipe_id", type=int)
    scale_parser.add_argument("input_weight", type=float)

    check_parser = subparsers.add_parser("record-check", help="Record a checkpoint evaluation")
    check_parser.add_argument("batch_id", type=int)
    check_parser.add_argument("checkpoint_id", type=int)
    check_parser.add_argument("status", help="pending|passed|failed|skipped|conditional")
    check_parser.add_argument(
        "--measure",
        action="append",
        metavar="FIELD=VALUE",
        help="Measurement, repeatable (temperature_c, humidity_percent, ph_level, water_activity)",
    )
    check_parser.add_argument("--notes")
    check_parser.add_argument("--corrective-action", dest="corrective_action")
    check_parser.add_argument(
        "--recheck-required", dest="recheck_required", action="store_true"
    )
    _add_actor_arguments(check_parser)

    progress_parser = subparsers.add_parser("progress", help="Show batch QA progress")
    progress_parser.add_argument("batch_id", type=int)

    complete_parser = subparsers.add_parser("complete-batch", help="Complete a batch")
    complete_parser.add_argument("batch_id", type=int)
    _add_actor_arguments(complete_parser)

    allocate_parser = subparsers.add_parser("allocate", help="Allocate lots to an ingredient (FEFO)")
    allocate_parser.add_argument("batch_ingredient_id", type=int)
    allocate_parser.add_argument("--quantity", type=float, help="Default: unallocated target")
    _add_actor_arguments(allocate_parser)

    recall_parser = subparsers.add_parser("recall-lot", help="Recall a lot and cascade")
    recall_parser.add_argument("lot_id", type=int)
    recall_parser.add_argument("--reason", required=True)
    recall_parser.add_argument("--notes")
    _add_actor_arguments(recall_parser)

    trace_parser = subparsers.add_parser("trace-batch", help="List lots a batch consumed")
    trace_parser.add_argument("batch_id", type=int)

    release_parser = subparsers.add_parser("release", help="Release decisions")
    release_parser.add_argument(
        "action", choices=["approve", "reject", "hold", "release-hold", "show"]
    )
    release_parser.add_argument("batch_id", type=int)
    release_parser.add_argument("--reason")
    release_parser.add_argument("--notes")
    _add_actor_arguments(release_parser)

    return parser


def run_command(args) -> int:
    """Run one parsed command, printing its JSON result. Returns the exit code."""
    try:
        result = COMMANDS[args.command](args)
    except ServiceError as e:
        logging.getLogger(__name__).debug(f"{args.command} failed: {e}")
        _print_json(_error_payload(e))
        return 1
    _print_json(result)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command != "init-db":
        initialize_app_database()

    return run_command(args)


if __name__ == "__main__":
    sys.exit(main())
