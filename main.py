#!/usr/bin/env python3
"""Coding Agent - plans, implements and lands changes for GitHub issues and review feedback.

Usage:
    python main.py run                       # inside a GitHub Actions job
    python main.py run --issue 42            # implement a specific issue
    python main.py run --pr 57 --dry-run     # address review feedback, no remote writes
    python main.py plan --issue 42           # print the plan only
"""

import argparse
import dataclasses
import json
import logging
import os
import sys
import uuid

from config.settings import AgentConfig, action_input
from core.errors import AgentError
from core.orchestrator import Orchestrator
from manager.tasks import invocation_context


def _load_event(path):
    if not path or not os.path.isfile(path):
        return {}
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def context_from_env(args):
    """Invocation context from the GitHub Actions environment plus CLI overrides."""
    env = os.environ
    return invocation_context(
        event_name=env.get("GITHUB_EVENT_NAME", "workflow_dispatch"),
        actor=env.get("GITHUB_ACTOR", ""),
        repository=args.repo or env.get("GITHUB_REPOSITORY", ""),
        payload=_load_event(env.get("GITHUB_EVENT_PATH")),
        issue_number=args.issue or action_input("issue-number") or None,
        pr_number=args.pr or action_input("pr-number") or None,
    )


def write_outputs(result, path=None):
    """Append step outputs in the GITHUB_OUTPUT file format."""
    path = path or os.environ.get("GITHUB_OUTPUT")
    if not path:
        return
    outputs = {
        "status": result.status,
        "branch-name": result.branch_name,
        "pr-number": str(result.change_request_number or ""),
        "changes-summary": result.summary,
    }
    with open(path, "a", encoding="utf-8") as f:
        for key, value in outputs.items():
            if "\n" in value:
                delimiter = f"EOF_{uuid.uuid4().hex}"
                f.write(f"{key}<<{delimiter}\n{value}\n{delimiter}\n")
            else:
                f.write(f"{key}={value}\n")


def _config(args):
    config = AgentConfig.from_env()
    overrides = {}
    if args.dry_run:
        overrides["dry_run"] = True
    if args.max_iters:
        overrides["max_iterations"] = args.max_iters
    return dataclasses.replace(config, **overrides)


def cmd_run(args):
    """Run the full pipeline. Returns the process exit code."""
    orchestrator = Orchestrator(_config(args))
    result = orchestrator.run(context_from_env(args))

    print(f"Status:  {result.status}")
    if result.branch_name:
        print(f"Branch:  {result.branch_name}")
    if result.change_request_number:
        print(f"PR:      #{result.change_request_number} {result.change_request_url}")
    if result.message:
        print(f"Message: {result.message}")
    if args.verbose and result.summary:
        print(f"\n{result.summary}")

    write_outputs(result)
    return 0 if result.ok else 1


def cmd_plan(args):
    """Plan only: no generation, no remote writes."""
    orchestrator = Orchestrator(_config(args))
    try:
        plan = orchestrator.plan_only(context_from_env(args))
    except AgentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Summary:    {plan.summary}")
    print(f"Complexity: {plan.complexity}")
    print(f"Source:     {'heuristic fallback (model unavailable)' if plan.from_fallback else 'model'}")
    print("\nFiles:")
    for path in plan.target_files:
        print(f"  {path}")
    print(f"\nApproach:\n{plan.approach}")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="coding-agent",
        description="Autonomous implement/verify/land pipeline for GitHub repositories",
    )
    subparsers = parser.add_subparsers(dest="command")

    for name, help_text in (("run", "Run the full pipeline"), ("plan", "Print the plan for a task")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--issue", type=int, help="Issue number to implement")
        sub.add_argument("--pr", type=int, help="Pull request number whose review feedback to address")
        sub.add_argument("--repo", help="owner/name (default: GITHUB_REPOSITORY)")
        sub.add_argument("--max-iters", type=int, help="Generation iterations (capped by the hard limit)")
        sub.add_argument("--dry-run", action="store_true", help="Plan, generate and review without remote writes")
        sub.add_argument("--verbose", action="store_true", help="Debug logging and full summary output")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if args.command == "run":
        return cmd_run(args)
    return cmd_plan(args)


if __name__ == "__main__":
    sys.exit(main())
