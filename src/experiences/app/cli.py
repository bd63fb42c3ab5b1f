from __future__ import annotations

import argparse
import json
import sys

from experiences.app.runner import EvaluateRequest, run_evaluate


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="experiences")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_eval = sub.add_parser("evaluate", help="Evaluate experiences against a url")
    p_eval.add_argument("--experiences", required=True, help="YAML file of experience definitions")
    p_eval.add_argument("--config", default=None)
    p_eval.add_argument("--url", required=True)
    p_eval.add_argument("--user-agent", default="")
    mode = p_eval.add_mutually_exclusive_group()
    mode.add_argument("--all", action="store_true", help="Evaluate every experience by priority")
    mode.add_argument("--explain", metavar="ID", default=None)

    args = parser.parse_args(argv)

    if args.cmd == "evaluate":
        req = EvaluateRequest(
            experiences_path=args.experiences,
            url=args.url,
            config_path=args.config,
            mode="all" if args.all else "explain" if args.explain else "first",
            explain_id=args.explain,
            user_agent=args.user_agent,
        )
        decisions = run_evaluate(req)
        if req.mode == "explain" and not decisions:
            print(f"unknown experience id={args.explain!r}", file=sys.stderr)
            return 2
        for decision in decisions:
            print(json.dumps(decision.as_dict(), separators=(",", ":"), default=str))
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
