"""Run the health check on every stored profile, optionally recovering corrupt ones."""

import argparse

from sqlmodel import Session, select

from orderline.database import get_storage_engine
from orderline.models import StorageEntry
from orderline.services.persistence import TaskStore
from orderline.services.storage import SqlStorage


def check_profiles(recover: bool = False):
    engine = get_storage_engine()
    with Session(engine) as session:
        profiles = session.exec(select(StorageEntry.namespace).distinct()).all()

    if not profiles:
        print('No profiles found')
        return

    for profile in profiles:
        store = TaskStore(SqlStorage(engine, namespace=profile))
        report = store.health_check()
        print(f"{profile}: {'healthy' if report.healthy else 'UNHEALTHY'}")
        for issue in report.issues:
            print(f"  issue: {issue}")
        for recommendation in report.recommendations:
            print(f"  note:  {recommendation}")

        if recover and store.detect_corruption():
            tasks = store.recover()
            print(f"  recovered {len(tasks)} tasks")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Check stored task data")
    parser.add_argument("--recover", action="store_true", help="Run emergency recovery on corrupt profiles")
    args = parser.parse_args()
    check_profiles(args.recover)
