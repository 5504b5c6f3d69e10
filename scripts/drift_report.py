#!/usr/bin/env python3
"""
Drift Report - one reconciliation pass from the command line

Fetches every environment's import map, resolves the deployed commits and
prints the drift report.

Usage:
    python scripts/drift_report.py
    python scripts/drift_report.py --mode since_deployed --format table
    python scripts/drift_report.py --partial --lenient
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
load_dotenv()

from mfe_drift import Config, DriftEngineError, DriftMode, ReconciliationEngine, ReferencePolicy
from mfe_drift.logging_config import setup_logging

logger = logging.getLogger(__name__)

SEVERITY_MARKERS = {
    "healthy": "✅",
    "acceptable": "🟢",
    "warning": "🟡",
    "almostDanger": "🟠",
    "danger": "🔴",
    "unknown": "❔",
}


def render_table(report: dict, environments: List[str]) -> str:
    """Plain text table: one line per module, one column per environment."""
    width = max([len(name) for name in report["modules"]] + [6])
    lines = [f"{'module':<{width}}  " + "  ".join(f"{env:<28}" for env in environments)]
    lines.append("-" * len(lines[0]))

    for module, row in report["modules"].items():
        cells = []
        for env in environments:
            cell = row.get(env)
            if cell is None:
                cells.append(f"{'-':<28}")
            else:
                cells.append(f"{SEVERITY_MARKERS[cell['severity']]} {cell['message']:<26}")
        lines.append(f"{module:<{width}}  " + "  ".join(cells))

    summary = ", ".join(f"{name}: {count}" for name, count in report["summary"].items() if count)
    lines.append("")
    lines.append(f"Summary ({report['mode']}): {summary or 'no modules'}")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Microfrontend drift report")
    parser.add_argument('--mode', choices=[m.value for m in DriftMode], default=DriftMode.BEHIND_BASELINE.value,
                        help='Drift view used for severity')
    parser.add_argument('--format', choices=['json', 'table'], default='json', help='Output format')
    parser.add_argument('--config', type=Path, help='Environments settings file')
    parser.add_argument('--partial', action='store_true',
                        help='Report on the reachable environments when an import map is missing')
    parser.add_argument('--lenient', action='store_true',
                        help='Record modules without a commit reference instead of failing')
    parser.add_argument('--log-level', default=None, help='Log level (default: LOG_LEVEL or INFO)')

    args = parser.parse_args(argv)

    try:
        config = Config.from_env(config_file=args.config)
        if args.partial:
            config.allow_partial_manifests = True
        if args.lenient:
            config.reference_policy = ReferencePolicy.LENIENT
        config.validate()
    except DriftEngineError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    setup_logging(args.log_level or config.log_level, secrets=config.secrets())

    try:
        result = ReconciliationEngine(config).run()
    except DriftEngineError as e:
        logger.error(f"❌ Reconciliation failed: {config.redact_secrets(e)}")
        return 1

    mode = DriftMode(args.mode)
    report = result.drift_to_dict(mode)

    if args.format == 'table':
        print(render_table(report, result.environments))
        for env, error in result.manifest_errors.items():
            print(f"⚠️  {env}: {error}")
    else:
        report["manifest_errors"] = result.manifest_errors
        report["commits"] = result.to_dict()["modules"]
        print(json.dumps(report, indent=2))

    return 0


if __name__ == "__main__":
    sys.exit(main())
