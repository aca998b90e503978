#!/usr/bin/env python3
"""
SplitRisk CLI

Command-line access to the simulator, the waterfall, the phase clock and
configuration.

Usage:
    splitrisk <command> [subcommand] [options]

Commands:
    simulate    Run a scenario file against an in-memory deployment
    waterfall   Compute payout ratios for a recovered balance
    phase       Show the phase for a point in time
    config      Configuration management
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from typing import Any, List, Optional

from splitrisk import __version__


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        import yaml
        return yaml.dump(data, default_flow_style=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:40] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
        lines.append(header_line)
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class SplitRiskCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="splitrisk",
            description="SplitRisk tranche pool tooling",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"splitrisk {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Configuration file to load before running the command",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_simulate_command()
        self._register_waterfall_command()
        self._register_phase_command()
        self._register_config_commands()

    def _register_simulate_command(self) -> None:
        simulate = self.subparsers.add_parser("simulate", help="Run a scenario")
        simulate.add_argument("scenario", help="Scenario file (YAML or JSON)")
        simulate.add_argument("--events", action="store_true", help="Include emitted events in the output")

    def _register_waterfall_command(self) -> None:
        waterfall = self.subparsers.add_parser("waterfall", help="Compute payout ratios")
        waterfall.add_argument("--total-tranches", "-t", type=int, required=True, help="Total tranche count")
        waterfall.add_argument("--final-balance", "-b", type=int, required=True, help="Recovered base asset")
        waterfall.add_argument("--interest", "-i", type=int, default=0, help="Venue interest over principal")

    def _register_phase_command(self) -> None:
        phase = self.subparsers.add_parser("phase", help="Phase for a point in time")
        phase.add_argument("--deployed-at", "-d", type=int, required=True, help="Deployment time (unix seconds)")
        phase.add_argument("--at", "-t", type=int, help="Time to evaluate (default: now)")

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        # config get
        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., schedule.insurance_period)")

        # config show
        config_sub.add_parser("show", help="Show all configuration")

        # config validate
        config_sub.add_parser("validate", help="Validate configuration")

        # config schema
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            fmt = OutputFormat(parsed.format)
            from splitrisk.config import get_config_manager
            mgr = get_config_manager()
            mgr.load_defaults()
            if parsed.config:
                mgr.load_from_file(parsed.config)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            if isinstance(result, dict) and result.get("passed") is False:
                return 1
            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}")

        return handler(args)

    # Protocol handlers
    def _handle_simulate(self, args: argparse.Namespace) -> Any:
        from splitrisk.simulation import run_scenario

        report = run_scenario(args.scenario).to_dict()
        if not args.events:
            report.pop("events")
        return report

    def _handle_waterfall(self, args: argparse.Namespace) -> Any:
        from splitrisk.config import get_config
        from splitrisk.waterfall import compute_payout_ratios

        scale = get_config().protocol.fixed_point_scale.get()
        ratios = compute_payout_ratios(args.final_balance, args.total_tranches, args.interest, scale)
        senior, junior = ratios.as_decimal(scale)
        return {
            "regime": ratios.regime.value,
            "senior_payout_ratio": str(ratios.senior),
            "junior_payout_ratio": str(ratios.junior),
            "senior": senior,
            "junior": junior,
            "scale": str(scale),
        }

    def _handle_phase(self, args: argparse.Namespace) -> Any:
        from splitrisk.clock import Schedule, phase_at
        from splitrisk.config import get_config
        from splitrisk.core import iso8601_from_unix, now_unix

        d = get_config().schedule.durations_seconds()
        schedule = Schedule.from_durations(
            args.deployed_at,
            issuance=d["issuance_period"],
            insurance=d["insurance_period"],
            pending=d["divest_period"],
            a_window=d["a_claim_period"],
        )
        at = now_unix() if args.at is None else args.at
        return {
            "at": at,
            "at_iso": iso8601_from_unix(at),
            "phase": phase_at(at, schedule).value,
            "schedule": schedule.to_dict(),
        }

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from splitrisk.config import get_config_manager
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from splitrisk.config import get_config_manager
        mgr = get_config_manager()
        return mgr.config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from splitrisk.config import get_config_manager
        mgr = get_config_manager()
        errors = mgr.validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from splitrisk.config import get_config_manager
        mgr = get_config_manager()
        return mgr.export_schema()


def main() -> int:
    """CLI entry point."""
    cli = SplitRiskCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
