#!/usr/bin/env python3
"""campaign_tool.py

Command-line front end for the campaign builder.

Everything except `sync-ads`, `cache-stats` and `whoami` runs offline: plans
and variable contexts are plain JSON files.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from ad_processing import review_summary
from campaign_export import generate_export
from db import AppConfig, StoreError
from location_store import JsonLocationSource, LocationStorePG
from meta_client import MetaAPIError, MetaClient, MetaConfig
from meta_store import MetaStorePG, sync_meta_ads
from models import GenerationPlan, LocationWithConfig
from template_vars import VariableContext, preview_template, resolve

log = logging.getLogger("campaign_tool")


def _read_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _load_context(path: Optional[str]) -> VariableContext:
    if not path:
        return VariableContext()
    return VariableContext.model_validate(_read_json(path))


def _load_plan(path: str) -> GenerationPlan:
    return GenerationPlan.model_validate(_read_json(path))


def _plan_locations(plan: GenerationPlan, app_cfg: AppConfig) -> List[LocationWithConfig]:
    out = list(plan.locations)
    if not plan.location_ids:
        return out
    source = JsonLocationSource(app_cfg.locations_json_path) if app_cfg.locations_json_path else None
    store = LocationStorePG(app_cfg.require_database(), json_source=source)
    by_id = {loc.id: loc for loc in store.get_locations_with_configs()}
    missing = [i for i in plan.location_ids if i not in by_id]
    if missing:
        raise LookupError(f"Unknown locations: {', '.join(missing)}")
    out.extend(by_id[i] for i in plan.location_ids)
    return out


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


# -----------------------------
# CLI
# -----------------------------

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="campaign_tool.py",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=textwrap.dedent(
            """
            Multi-location campaign builder

            Examples:
              # 1) Resolve a template against a variable context
              python campaign_tool.py resolve --template "Visit {{location.name}}!" --context ctx.json

              # 2) Preview a template (resolved text + missing variables)
              python campaign_tool.py preview --template "Call {{location.phoneNumber}}" --context ctx.json

              # 3) Review a plan before exporting
              python campaign_tool.py review --plan plan.json

              # 4) Write the bulk-upload file for a plan
              python campaign_tool.py generate --plan plan.json --format csv --out upload.csv

              # 5) Refresh the cached Meta ads and show cache stats
              python campaign_tool.py sync-ads --force-refresh
              python campaign_tool.py cache-stats
            """
        ),
    )

    p.add_argument("--env", default=".env", help="Path to .env file (default: .env).")
    p.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level.")

    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("resolve", help="Substitute {{placeholders}} in a template.")
    sp.add_argument("--template", required=True)
    sp.add_argument("--context", help="Variable context JSON file.")

    sp = sub.add_parser("preview", help="Resolve a template and report missing variables.")
    sp.add_argument("--template", required=True)
    sp.add_argument("--context", help="Variable context JSON file.")

    sp = sub.add_parser("review", help="Summarize a plan and list form errors.")
    sp.add_argument("--plan", required=True)

    sp = sub.add_parser("generate", help="Write the bulk-upload file for a plan.")
    sp.add_argument("--plan", required=True)
    sp.add_argument("--format", choices=["csv", "json"], help="Overrides the plan's format.")
    sp.add_argument("--out", help="Output path (default: generated file name in the current directory).")

    sp = sub.add_parser("sync-ads", help="Pull the ad account's ads into the template cache.")
    sp.add_argument("--account-id", help="Defaults to META_AD_ACCOUNT_ID.")
    sp.add_argument("--force-refresh", action="store_true", help="Drop cached ads of the account first.")
    sp.add_argument("--with-insights", action="store_true", help="Also fetch impressions/clicks/spend/reach.")

    sp = sub.add_parser("cache-stats", help="Show how many ads are cached and when they were synced.")
    sp.add_argument("--account-id")

    sub.add_parser("whoami", help="GET /me (validates token).")

    return p


def main(argv: Optional[List[str]] = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    env_path = Path(args.env)
    if env_path.exists():
        load_dotenv(env_path, override=False)

    app_cfg = AppConfig.from_env()

    try:
        if args.cmd == "resolve":
            _print({"result": resolve(args.template, _load_context(args.context))})
            return 0

        if args.cmd == "preview":
            _print(preview_template(args.template, _load_context(args.context)).model_dump())
            return 0

        if args.cmd == "review":
            plan = _load_plan(args.plan)
            summary = review_summary(plan.config, _plan_locations(plan, app_cfg), meta_ads=plan.meta_ads)
            _print(summary.model_dump())
            return 0 if summary.ready else 1

        if args.cmd == "generate":
            plan = _load_plan(args.plan)
            if args.format:
                plan.options.format = args.format
                plan.options.file_name = None
            result = generate_export(plan, _plan_locations(plan, app_cfg))
            out = Path(args.out or result.file_name)
            out.write_text(result.content, encoding="utf-8")
            _print({"file": str(out), "rows": result.row_count})
            return 0

        if args.cmd == "cache-stats":
            store = MetaStorePG(app_cfg.require_database())
            _print(store.cache_stats(args.account_id))
            return 0
    except ValidationError as e:
        print("\n[INVALID INPUT]", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2
    except (ValueError, LookupError, OSError, StoreError) as e:
        print("\n[ERROR]", e, file=sys.stderr)
        return 1

    # Commands below talk to Meta.
    try:
        cfg = MetaConfig.from_env()
    except (ValueError, RuntimeError) as e:
        print(f"[CONFIG ERROR] {e}", file=sys.stderr)
        print("Tip: set META_ACCESS_TOKEN and META_AD_ACCOUNT_ID in .env.", file=sys.stderr)
        return 2

    client = MetaClient(cfg)

    try:
        if args.cmd == "whoami":
            _print(client.whoami())
            return 0

        if args.cmd == "sync-ads":
            store = MetaStorePG(app_cfg.require_database())
            result = sync_meta_ads(
                client,
                store,
                account_id=args.account_id,
                force_refresh=args.force_refresh,
                with_insights=args.with_insights,
            )
            _print(result)
            return 0

        print(f"Unknown command: {args.cmd}", file=sys.stderr)
        return 2

    except MetaAPIError as e:
        print("\n[MetaAPIError]", e, file=sys.stderr)
        if e.error:
            print(json.dumps(e.error, indent=2), file=sys.stderr)
        return 1
    except (ValueError, StoreError) as e:
        print("\n[ERROR]", e, file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
