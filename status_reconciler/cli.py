"""
Status Reconciler — operator CLI.

Commands:
    status-reconciler validate-env
    status-reconciler coverage
    status-reconciler repair [--strict] [--dry-run] [--entity PR --entity PO]
    status-reconciler cascade
    status-reconciler root-cause
    status-reconciler cleanup-plan [--backups-dir DIR]
    status-reconciler cleanup-execute --plan DIR/cleanup-plan.json --confirm <plan id>
    status-reconciler log-start [--notes "..."]
    status-reconciler log-complete
    status-reconciler readiness [--fail-if-not-ready]

Every command except validate-env runs through the batch harness: the
store is pinged first and an unreachable store exits 1 before any work.
Reports land in REPORTS_DIR as timestamped JSON files.
"""

import argparse
import logging
import sys

from status_reconciler.core.exceptions import CleanupConfirmationError
from status_reconciler.services.batch_job import run_batch_job
from status_reconciler.services.status_mapping import EntityType

logger = logging.getLogger(__name__)

NOT_READY_EXIT = 2


def _app(args):
    from status_reconciler import create_app
    return args.app or create_app(args.config)


def _run(args, job_name, work, report_name=None):
    return run_batch_job(job_name, work, app=_app(args), report_name=report_name)


# ── Commands ─────────────────────────────────────────────────────────────────

def cmd_validate_env(args):
    """Check configuration, connectivity and output directories."""
    from status_reconciler.services.preflight import check_environment

    result = check_environment(_app(args))
    return 0 if result["ok"] else 1


def cmd_coverage(args):
    from status_reconciler.services.coverage_auditor import CoverageAuditor

    def work(flags):
        return CoverageAuditor(flags, entity_types=args.entity).run().to_dict()

    return _run(args, "coverage", work, "unified-field-coverage")


def cmd_repair(args):
    from flask import current_app

    from status_reconciler.services.consistency_repairer import ConsistencyRepairer

    def work(flags):
        repairer = ConsistencyRepairer(
            flags, source=args.source or current_app.config["REPAIR_SOURCE_TAG"], strict=args.strict,
            dry_run=args.dry_run, entity_types=args.entity,
        )
        return repairer.run().to_dict()

    return _run(args, "consistency-repair", work, "status-consistency-repair")


def cmd_cascade(args):
    from status_reconciler.services.cascade_auditor import CascadeAuditor

    def work(flags):
        return CascadeAuditor(flags).run().to_dict()

    return _run(args, "cascade-audit", work, "cascade-integrity")


def cmd_root_cause(args):
    from status_reconciler.services.cascade_root_cause import RootCauseAnalyzer

    def work(flags):
        return RootCauseAnalyzer(flags).run().to_dict()

    return _run(args, "cascade-root-cause", work, "cascade-root-cause")


def cmd_cleanup_plan(args):
    from flask import current_app

    from status_reconciler.services.cleanup_planner import OrphanCleanupPlanner, render_delete_instructions

    def work(flags):
        backups_dir = args.backups_dir or current_app.config["BACKUPS_DIR"]
        plan = OrphanCleanupPlanner(flags).plan(backups_dir)
        for line in render_delete_instructions(plan):
            logger.info(line)
        return plan.to_dict()

    return _run(args, "orphan-cleanup-plan", work, "orphan-cleanup-plan")


def cmd_cleanup_execute(args):
    from status_reconciler.services.cleanup_planner import execute_cleanup_plan, load_cleanup_plan

    def work(flags):
        plan = load_cleanup_plan(args.plan)
        try:
            outcome = execute_cleanup_plan(plan, confirm=args.confirm, flags=flags)
        except CleanupConfirmationError as exc:
            logger.error("❌ %s", exc)
            return {"planId": plan.plan_id, "deleted": {}, "error": exc.reason, "exit_code": 1}
        return {"planId": plan.plan_id, **outcome.to_dict()}

    return _run(args, "orphan-cleanup-execute", work, "orphan-cleanup-execute")


def cmd_log_start(args):
    from status_reconciler.services.migration_log_service import record_migration_start

    def work(flags):
        return record_migration_start(args.source, notes=args.notes).to_dict()

    return _run(args, "migration-log-start", work)


def cmd_log_complete(args):
    from status_reconciler.services.migration_log_service import entity_counts, record_migration_complete

    def work(flags):
        return record_migration_complete(args.source, {"entityCounts": entity_counts()}).to_dict()

    return _run(args, "migration-log-complete", work)


def cmd_readiness(args):
    from status_reconciler.services.readiness_evaluator import READY, ReadinessEvaluator

    def work(flags):
        report = ReadinessEvaluator(flags).evaluate()
        result = report.to_dict()
        if args.fail_if_not_ready and report.verdict != READY:
            result["exit_code"] = NOT_READY_EXIT
        return result

    return _run(args, "rollout-readiness", work, "rollout-readiness")


# ── Parser ───────────────────────────────────────────────────────────────────

def build_parser():
    parser = argparse.ArgumentParser(
        prog="status-reconciler",
        description="Dual-status migration and reconciliation jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", default=None,
                        help="Configuration name (development | testing | production); defaults to APP_ENV")
    sub = parser.add_subparsers(dest="command", help="Command")

    sub.add_parser("validate-env", help="Pre-flight environment check")

    entity_choices = [e.value for e in EntityType]

    p_cov = sub.add_parser("coverage", help="Unified field coverage audit")
    p_cov.add_argument("--entity", action="append", choices=entity_choices,
                       help="Restrict to an entity type (repeatable)")

    p_rep = sub.add_parser("repair", help="Backfill / repair unified statuses")
    p_rep.add_argument("--strict", action="store_true",
                       help="Also correct unified values that disagree with the mapping")
    p_rep.add_argument("--dry-run", action="store_true", help="Report what would change; write nothing")
    p_rep.add_argument("--entity", action="append", choices=entity_choices,
                       help="Restrict to an entity type (repeatable)")
    p_rep.add_argument("--source", default=None, help="Source tag for log entries (default REPAIR_SOURCE_TAG)")

    sub.add_parser("cascade", help="Relationship & cascade integrity audit")
    sub.add_parser("root-cause", help="Root-cause analysis of PR fulfilment mismatches")

    p_plan = sub.add_parser("cleanup-plan", help="Back up orphans and print delete statements")
    p_plan.add_argument("--backups-dir", default=None, help="Override BACKUPS_DIR")

    p_exec = sub.add_parser("cleanup-execute", help="Delete the records listed in a cleanup plan")
    p_exec.add_argument("--plan", required=True, help="Path to cleanup-plan.json")
    p_exec.add_argument("--confirm", required=True, help="Plan id, echoed back to confirm deletion")

    p_start = sub.add_parser("log-start", help="Record a MIGRATION_START entry")
    p_start.add_argument("--source", default="migration-setup")
    p_start.add_argument("--notes", default=None)

    p_done = sub.add_parser("log-complete", help="Record a MIGRATION_COMPLETE entry")
    p_done.add_argument("--source", default="migration-setup")

    p_ready = sub.add_parser("readiness", help="Rollout readiness scorecard")
    p_ready.add_argument("--fail-if-not-ready", action="store_true",
                         help=f"Exit {NOT_READY_EXIT} when the verdict is NOT READY (CI gating)")
    return parser


COMMANDS = {
    "validate-env": cmd_validate_env,
    "coverage": cmd_coverage,
    "repair": cmd_repair,
    "cascade": cmd_cascade,
    "root-cause": cmd_root_cause,
    "cleanup-plan": cmd_cleanup_plan,
    "cleanup-execute": cmd_cleanup_execute,
    "log-start": cmd_log_start,
    "log-complete": cmd_log_complete,
    "readiness": cmd_readiness,
}


def main(argv=None, app=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    args.app = app

    if args.command not in COMMANDS:
        parser.print_help()
        return 2
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
