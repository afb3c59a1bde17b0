"""
Entry point for the eSIM Catalog pipeline.

Usage:
  # Seed an in-memory catalog and print a selection report:
  python main.py demo

  # Unified sync + price comparison + auto-selection against DATABASE_URL:
  python main.py sync

  # Auto-selection only:
  python main.py select

  # Start the FastAPI admin server:
  python main.py api

  # Run the per-provider sync scheduler in the foreground:
  python main.py scheduler

  # Run tests:
  python main.py test
"""

from __future__ import annotations

import json
import logging
import os
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("main")


def seed_demo_catalog(session) -> None:
    """Four providers selling overlapping Japan/France plans."""
    from db.models import (
        AiraloPackage, Destination, EsimAccessPackage, EsimGoPackage, MayaPackage, Provider,
    )

    # destinations come from init_db
    japan = session.query(Destination).filter(Destination.country_code == "JP").one()
    france = session.query(Destination).filter(Destination.country_code == "FR").one()
    airalo = Provider(name="Airalo", slug="airalo", enabled=True, is_preferred=True,
                      pricing_margin="25.00", failover_priority=1)
    access = Provider(name="eSIM Access", slug="esim-access", enabled=True,
                      pricing_margin="20.00", failover_priority=2)
    esim_go = Provider(name="eSIM Go", slug="esim-go", enabled=True,
                       pricing_margin="15.00", failover_priority=3)
    maya = Provider(name="Maya Mobile", slug="maya", enabled=True,
                    pricing_margin="18.00", failover_priority=4)
    session.add_all([airalo, access, esim_go, maya])
    session.flush()

    common = dict(currency="USD", type="local")
    session.add_all([
        AiraloPackage(provider_id=airalo.id, airalo_id="ja-3gb-7", slug="japan-3gb-7days",
                      title="Moshi Moshi 3GB", data_amount="3GB", validity=7,
                      airalo_price="2.50", price="4.50", **common),
        AiraloPackage(provider_id=airalo.id, airalo_id="fr-unl-10", slug="france-unlimited-10days",
                      title="Bonjour Unlimited", data_amount="Unlimited", validity=10,
                      airalo_price="19.00", price="26.00", is_unlimited=True, **common),
        EsimAccessPackage(provider_id=access.id, esim_access_id="JP-3-7", slug="JP_3GB_7D",
                          title="Japan 3GB 7 Days", data_amount="3 GB", validity=7,
                          wholesale_price="3.00", coverage=["JP"], **common),
        EsimAccessPackage(provider_id=access.id, esim_access_id="FR-1-7", slug="FR_1GB_7D",
                          title="France 1GB 7 Days", data_amount="1024MB", validity=7,
                          wholesale_price="1.10", coverage=["FR"], **common),
        EsimGoPackage(provider_id=esim_go.id, esim_go_id="esim_3GB_7D_JP_V2", slug="esim_3GB_7D_JP_v2",
                      title="eSIM, 3GB, 7 Days, Japan", data_amount="3GB", validity=7,
                      wholesale_price="2.40", **common),
        MayaPackage(provider_id=maya.id, maya_id="MAYA-FR-1G", slug="maya-fr-1gb-7d",
                    title="France 1 GB", data_amount="1 GB", validity=7,
                    wholesale_price="0.95", data_mb=1024, **common),
        MayaPackage(provider_id=maya.id, maya_id="MAYA-JP-5G", slug="maya-jp-5gb-10d",
                    title="Japan 5 GB", data_amount="5 GB", validity=10,
                    wholesale_price="4.20", data_mb=5120, **common),
    ])
    session.commit()


def demo():
    """
    End-to-end demo run against an in-memory SQLite catalog.
    Prints a formatted report to stdout.
    """
    from sqlalchemy.orm import sessionmaker
    from sqlalchemy.pool import StaticPool

    from db.database import build_engine, init_db
    from db.models import UnifiedPackage
    from services.auto_selector import AutoSelector
    from services.price_comparison import PriceComparisonEngine
    from utils.pipeline import run_full_cycle

    logger.info("=== eSIM Catalog: Demo Run ===")

    engine = build_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        seed_demo_catalog(session)
        result = run_full_cycle(session)

        # ── Print report ──────────────────────────────────────────────────
        ctx = result.context
        print("\n" + "=" * 70)
        print("  ESIM CATALOG REPORT")
        print("=" * 70)
        print(f"  Success    : {result.success}")
        print(f"  New rows   : {ctx.sync.total_synced if ctx.sync else 0}")
        print(f"  Groups     : {ctx.selection.total_groups if ctx.selection else 0}")
        print(f"  Enabled    : {ctx.selection.packages_enabled if ctx.selection else 0}")
        print("=" * 70)

        print("\nUNIFIED CATALOG")
        print("-" * 70)
        rows = session.query(UnifiedPackage).order_by(UnifiedPackage.package_group_key, UnifiedPackage.id)
        for row in rows:
            flags = ("BEST " if row.is_best_price else "     ") + ("ON " if row.is_enabled else "off")
            data = "Unlimited" if row.data_mb is None else f"{row.data_mb}MB"
            print(
                f"  [{row.id:>2}] {row.provider.name:<12} {row.title:<26} "
                f"{data:>9} {row.validity_days:>3}d  ${row.retail_price:>6}  {flags}"
            )

        print("\nMARKETPLACE GROUPS")
        print("-" * 70)
        for key, members in AutoSelector(session).get_grouped_packages().items():
            options = ", ".join(f"{p.provider_name} ${p.retail_price}" for p in members)
            print(f"  {key:<20} {options}")

        print("\nSTATISTICS")
        print("-" * 70)
        print(json.dumps(PriceComparisonEngine(session).get_statistics().to_dict(), indent=2))
        if ctx.errors:
            print("\nERRORS")
            for e in ctx.errors:
                print(f"  - {e}")
        print("=" * 70)
        return result
    finally:
        session.close()


def sync():
    """One full unified sync → price comparison → auto-selection cycle."""
    from db.database import get_db, init_db
    from services.ai_client import AIClient
    from utils.pipeline import run_full_cycle

    init_db()
    with get_db() as session:
        result = run_full_cycle(session, ai_client=AIClient())
    print(json.dumps(result.to_dict(), indent=2))
    if not result.success:
        sys.exit(1)


def select():
    from db.database import get_db, init_db
    from services.ai_client import AIClient
    from services.auto_selector import AutoSelector

    init_db()
    with get_db() as session:
        result = AutoSelector(session, ai_client=AIClient()).run_auto_selection()
    print(json.dumps(result.to_dict(), indent=2))
    if not result.success:
        sys.exit(1)


def start_api():
    """Start the FastAPI server."""
    import uvicorn
    from config.settings import settings

    uvicorn.run("api.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)


def start_scheduler():
    import time

    from db.database import init_db
    from services.ai_client import AIClient
    from services.scheduler import SyncScheduler

    init_db()
    scheduler = SyncScheduler(ai_client=AIClient())
    scheduler.start()
    try:
        while True:
            time.sleep(60)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down scheduler")
    finally:
        scheduler.stop()


def run_tests():
    """Run pytest."""
    import subprocess
    result = subprocess.run(
        ["pytest", "tests/", "-v", "--tb=short"],
        cwd=os.path.dirname(os.path.abspath(__file__)),
    )
    sys.exit(result.returncode)


COMMANDS = {
    "demo": demo,
    "sync": sync,
    "select": select,
    "api": start_api,
    "scheduler": start_scheduler,
    "test": run_tests,
}


if __name__ == "__main__":
    command = sys.argv[1] if len(sys.argv) > 1 else "demo"

    if command not in COMMANDS:
        print(f"Unknown command: {command}")
        print(f"Usage: python main.py [{'|'.join(COMMANDS)}]")
        sys.exit(1)
    COMMANDS[command]()
