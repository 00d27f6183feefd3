import argparse
import asyncio
import time
from typing import Optional

from auth import auth_from_settings, require_user
from client import BackendClient, store_from_settings
from config import APP_VERSION, configure_logging, load_settings
from db import ProfileRepository, TokenRepository
from errors import AuthenticationRequired, ProfileFetchFailed
from goal_service import GoalForm, GoalOutcome
from notifications import LogNotifier
from training_service import EXERCISES, CompletionOutcome, TrainingSession


def provision(db_path: str, username: str) -> tuple[str, str]:
    """Create a profile and a session token in the local database."""
    profiles = ProfileRepository(db_path)
    user_id = profiles.create(username)
    token = TokenRepository(db_path).issue(user_id)
    print(f"user_id: {user_id}")
    print(f"token: {token}")
    return user_id, token


def _resolve(settings, user: Optional[str], required: bool = False):
    store = store_from_settings(settings)
    if user:
        return store, user
    provider = auth_from_settings(settings)
    if required:
        return store, require_user(provider)
    return store, provider.current_user_id()


def add_goal(
    settings,
    user: Optional[str],
    text: str,
    end_date: str,
    tasks: list[str],
    links: list[str],
) -> GoalOutcome:
    store, user_id = _resolve(settings, user)
    notifier = LogNotifier()
    form = GoalForm(store, notifier, user_id)
    outcome = asyncio.run(form.submit(text, end_date, tasks, links))
    if notifier.last is not None:
        print(f"{notifier.last.title}: {notifier.last.description}")
    return outcome


def train(settings, user: Optional[str], exercise_id: str) -> CompletionOutcome:
    store, user_id = _resolve(settings, user, required=True)
    notifier = LogNotifier()
    session = TrainingSession(store, notifier, user_id)

    async def _run() -> CompletionOutcome:
        await session.load_profile()
        session.start_exercise(exercise_id)
        return await session.complete(exercise_id)

    outcome = asyncio.run(_run())
    if notifier.last is not None:
        print(f"{notifier.last.title}: {notifier.last.description}")
    return outcome


def show_profile(settings, user: Optional[str]) -> None:
    store, user_id = _resolve(settings, user, required=True)
    session = TrainingSession(store, LogNotifier(), user_id)
    profile = asyncio.run(session.load_profile())
    print(f"Level {profile.display_level} • {profile.display_experience} XP")


def serve(db_path: str, host: str, port: int, api_key: str) -> None:
    import uvicorn
    from rest_api import GoalAPI

    uvicorn.run(GoalAPI(db_path, api_key=api_key).app, host=host, port=port)


def benchmark(url: str, runs: int = 10) -> None:
    client = BackendClient(url, timeout=5)
    times: list[float] = []
    for _ in range(runs):
        t0 = time.time()
        client.health()
        times.append(time.time() - t0)
    avg = sum(times) / len(times)
    print(f"Average /health response time over {runs} runs: {avg:.4f}s")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="GoalQuest utility commands")
    parser.add_argument("--yaml", default="settings.yaml")
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    sub = parser.add_subparsers(dest="cmd", required=True)

    prov = sub.add_parser("provision")
    prov.add_argument("--db", default=None)
    prov.add_argument("--username", required=True)

    goal = sub.add_parser("goal")
    goal.add_argument("--user", default=None)
    goal.add_argument("--text", required=True)
    goal.add_argument("--end-date", required=True)
    goal.add_argument("--task", action="append", default=[])
    goal.add_argument("--link", action="append", default=[])

    tr = sub.add_parser("train")
    tr.add_argument("--user", default=None)
    tr.add_argument("--exercise", choices=[ex.id for ex in EXERCISES], required=True)

    prof = sub.add_parser("profile")
    prof.add_argument("--user", default=None)

    srv = sub.add_parser("serve")
    srv.add_argument("--db", default=None)
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    bench = sub.add_parser("benchmark")
    bench.add_argument("--url", default="http://localhost:8000")
    bench.add_argument("--runs", type=int, default=10)

    args = parser.parse_args(argv)
    settings = load_settings(args.yaml)
    configure_logging(settings.log_level)

    if args.cmd == "provision":
        provision(args.db or settings.db_path, args.username)
    elif args.cmd == "goal":
        outcome = add_goal(
            settings, args.user, args.text, args.end_date, args.task, args.link
        )
        return 0 if outcome is GoalOutcome.CREATED else 1
    elif args.cmd == "train":
        try:
            outcome = train(settings, args.user, args.exercise)
        except (AuthenticationRequired, ProfileFetchFailed) as e:
            print(f"Error: {e}")
            return 1
        return 0 if outcome is CompletionOutcome.COMPLETED else 1
    elif args.cmd == "profile":
        try:
            show_profile(settings, args.user)
        except (AuthenticationRequired, ProfileFetchFailed) as e:
            print(f"Error: {e}")
            return 1
    elif args.cmd == "serve":
        serve(args.db or settings.db_path, args.host, args.port, settings.backend_key)
    elif args.cmd == "benchmark":
        benchmark(args.url, args.runs)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
