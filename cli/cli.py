# cli/cli.py
"""
CLI registry and dispatcher for lead scoring commands.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from leadscore.core.config import settings
from leadscore.core.exceptions import ConfigError, EngineError
from leadscore.core.logging import configure_structlog
from leadscore.schemas.lead import LeadRecord
from leadscore.schemas.requests import CompareRequest, PriorityRequest, ScoringRequest
from leadscore.services.duplicate_scoring import LookbackWindow
from leadscore.services.engine import LeadScoringEngine, compare_leads
from leadscore.services.policies import EnginePolicy, load_engine_policy, parse_engine_policy
from leadscore.services.priority import classify
from leadscore.services.stats import summarize


# Output formatting utilities
def _supports_color() -> bool:
    """Check if terminal supports ANSI color codes."""
    if sys.platform == "win32":
        return os.getenv("TERM") == "xterm" or os.getenv("ANSICON") is not None
    try:
        return os.isatty(sys.stdout.fileno())
    except (AttributeError, OSError, ValueError):
        return False


SUPPORTS_COLOR = _supports_color()

# ANSI color codes
GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
YELLOW = '\033[93m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


def print_success(message: str):
    """Print success message with [✓] symbol."""
    print(f"{GREEN}[✓]{RESET} {message}")


def print_error(message: str):
    """Print error message with [✗] symbol."""
    print(f"{RED}[✗]{RESET} {message}")


def print_warning(message: str):
    """Print warning message with [!] symbol."""
    print(f"{YELLOW}[!]{RESET} {message}")


def print_info(message: str):
    """Print info message with [i] symbol."""
    print(f"{BLUE}[i]{RESET} {message}")


def print_json(data: Any):
    print(json.dumps(data, indent=2, default=str))


# Input helpers
def _read_payload(source: str) -> Dict[str, Any]:
    if source == "-":
        return json.load(sys.stdin)
    return json.loads(Path(source).read_text(encoding="utf-8"))


def _resolve_policy(inline: Dict[str, Any], args: argparse.Namespace) -> EnginePolicy:
    """Inline policy wins, then --policy, then SCORING_POLICY_FILE."""
    if inline:
        return parse_engine_policy(inline)
    path = getattr(args, "policy", None) or settings.scoring_policy_file
    if not path:
        raise ConfigError("No policy given; pass --policy or set SCORING_POLICY_FILE")
    return load_engine_policy(path)


class _ListCandidates:
    """Candidate finder over an in-memory list, filtered to the lookback window."""

    def __init__(self, leads: Sequence[LeadRecord]):
        self._leads = list(leads)

    async def find_candidates(self, lead: LeadRecord, window: LookbackWindow) -> List[LeadRecord]:
        return [c for c in self._leads if window.start <= c.created_at <= window.end]


# Command functions
async def cmd_score(args: argparse.Namespace) -> int:
    """Command: Score leads against existing records and decide each."""
    request = ScoringRequest.model_validate(_read_payload(args.input))
    policy = _resolve_policy(request.policy, args)
    engine = LeadScoringEngine.from_policy(
        policy,
        candidate_finder=_ListCandidates(request.existing),
        max_concurrent=args.max_concurrent,
    )

    batch = await engine.process_batch(request.leads)
    stats = summarize(
        [o.decision for o in batch.processed],
        [o.validation for o in batch.processed],
    )

    if args.json:
        print_json({
            "run_id": batch.run_id,
            "results": [
                {
                    "lead_id": o.lead_id,
                    "validation": o.validation.to_dict(),
                    "duplicates": [d.to_dict() for d in o.duplicates],
                    "decision": o.decision.to_dict(),
                }
                for o in batch.processed
            ],
            "failed": [{"lead_id": f.lead_id, "code": f.code, "message": f.message} for f in batch.failed],
            "stats": stats.to_dict(),
        })
        return 0 if not batch.failed else 1

    for outcome in batch.processed:
        decision = outcome.decision
        line = (
            f"{outcome.lead_id}: {decision.outcome.value} "
            f"(validation {outcome.validation.validation_score}, "
            f"duplicate {decision.snapshot.max_duplicate_score})"
        )
        if decision.merge_candidate_ids:
            line += f" -> merge with {', '.join(decision.merge_candidate_ids)}"
        print_success(line)
        if outcome.validation.issues and args.verbose:
            print_info(f"  Issues: {', '.join(i.value for i in outcome.validation.issues)}")
    for failure in batch.failed:
        print_error(f"{failure.lead_id}: {failure.code}: {failure.message}")

    print_info(
        f"Scored {stats.total_leads} lead(s): {stats.validated_leads} validated, "
        f"{stats.rejected_leads} rejected, {stats.pending_leads} pending, "
        f"{stats.merge_candidate_leads} merge candidate(s)"
    )
    return 0 if not batch.failed else 1


async def cmd_compare(args: argparse.Namespace) -> int:
    """Command: Duplicate score of two leads."""
    request = CompareRequest.model_validate(_read_payload(args.input))
    policy = _resolve_policy(request.policy, args)
    result = compare_leads(request.lead_a, request.lead_b, policy.rules, policy.config.scoring)

    if args.json:
        print_json(result.to_dict())
        return 0

    if result.zero_active_rules:
        print_warning("No active match rules; duplicate score is 0")
    print_success(f"{result.lead_id} vs {result.candidate_id}: {result.aggregate_score}")
    for c in result.contributions:
        status = "pass" if c.passed else ("missing" if c.missing_field else "below threshold")
        print_info(f"  {c.field} [{c.comparator.value}] {c.similarity:.1f} x{c.weight:g} ({status})")
    return 0


async def cmd_classify(args: argparse.Namespace) -> int:
    """Command: Priority band from weighted sub-scores."""
    request = PriorityRequest.model_validate(_read_payload(args.input))
    policy = _resolve_policy(request.policy, args)
    if policy.priority is None:
        raise ConfigError("Policy has no 'priority' section")
    result = classify(request.subscores, policy.priority)

    if args.json:
        data = result.to_dict()
        data["lead_id"] = request.lead_id
        print_json(data)
        return 0

    label = request.lead_id or "lead"
    print_success(f"{label}: {result.priority.value} ({result.overall_score:.1f})")
    return 0


# Command registry
COMMANDS: Dict[str, Callable] = {
    'score': cmd_score,
    'compare': cmd_compare,
    'classify': cmd_classify,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        description='Lead scoring CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    def _common(p: argparse.ArgumentParser):
        p.add_argument('input', help='JSON payload file, or - for stdin')
        p.add_argument('--policy', help='Policy JSON file (overrides SCORING_POLICY_FILE)')
        p.add_argument('--json', action='store_true', help='Print machine-readable JSON')

    # score
    score_parser = subparsers.add_parser('score', help='Score and decide a batch of leads')
    _common(score_parser)
    score_parser.add_argument('--max-concurrent', type=int, default=None, help='Concurrent leads')
    score_parser.add_argument('-v', '--verbose', action='store_true', help='Show validation issues')

    # compare
    _common(subparsers.add_parser('compare', help='Duplicate score of two leads'))

    # classify
    _common(subparsers.add_parser('classify', help='Priority band from sub-scores'))

    return parser


def main(args: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()

    if args is None:
        parsed_args = parser.parse_args()
    else:
        parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    command_func = COMMANDS.get(parsed_args.command)
    if not command_func:
        print_error(f"Unknown command: {parsed_args.command}")
        parser.print_help()
        return 1

    configure_structlog()

    try:
        return asyncio.run(command_func(parsed_args))
    except KeyboardInterrupt:
        print_error("\nInterrupted by user")
        return 130
    except EngineError as e:
        print_error(f"{e.code}: {e.message}")
        return 1
    except ValidationError as e:
        print_error(f"Invalid payload: {e.error_count()} error(s)")
        for err in e.errors():
            loc = ".".join(str(p) for p in err["loc"])
            print_error(f"  {loc}: {err['msg']}")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print_error(f"Cannot read input: {e}")
        return 1
    except Exception as e:
        print_error(f"Error executing command: {str(e)}")
        import traceback
        if os.getenv('DEBUG'):
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
