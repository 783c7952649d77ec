"""
Console entry point.

Usage:
    preppulse serve [--port 8000] [--insecure-cookies]
    preppulse sign-up --name NAME --email EMAIL --password PASSWORD
    preppulse sign-in --email EMAIL --password PASSWORD
    preppulse interview --user-id ID --user-name NAME --interview-id ID [--question Q ...]
    preppulse generate --user-id ID --user-name NAME
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger

from preppulse.auth_form import AuthFormController
from preppulse.backend import BackendClient
from preppulse.call_controller import CallController, CallStatus
from preppulse.config import AppConfig
from preppulse.credentials import FirebaseIdentityClient
from preppulse.database import Database, SqlFeedbackStore, SqlUserStore
from preppulse.feedback import FeedbackGenerator, FeedbackRecorder
from preppulse.routing import ConsoleNavigator, ConsoleNotifier
from preppulse.server import PrepPulseServer
from preppulse.voice_client import VapiClient

POLL_INTERVAL = 0.5


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="preppulse", description="Practice interviews with an AI interviewer")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the backend server")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--insecure-cookies", action="store_true", help="Allow session cookies over plain HTTP")

    sign_up = commands.add_parser("sign-up", help="Create an account")
    sign_up.add_argument("--name", required=True)
    sign_up.add_argument("--email", required=True)
    sign_up.add_argument("--password", required=True)

    sign_in = commands.add_parser("sign-in", help="Sign in to an existing account")
    sign_in.add_argument("--email", required=True)
    sign_in.add_argument("--password", required=True)

    for name, help_text in (("interview", "Run an interview call"), ("generate", "Run the interview generation call")):
        call = commands.add_parser(name, help=help_text)
        call.add_argument("--user-id", required=True)
        call.add_argument("--user-name", required=True)
        if name == "interview":
            call.add_argument("--interview-id", required=True)
            call.add_argument("--feedback-id", default=None)
            call.add_argument("--question", action="append", default=[], dest="questions")

    return parser


def serve(config: AppConfig, args: argparse.Namespace) -> None:
    database = Database(config.database_url)
    feedback_store = SqlFeedbackStore(database)
    generator = FeedbackGenerator(model=config.feedback_model, api_key=config.feedback_api_key)
    server = PrepPulseServer(
        verifier=FirebaseIdentityClient(config.firebase_api_key),
        users=SqlUserStore(database),
        feedback_store=feedback_store,
        recorder=FeedbackRecorder(generator, feedback_store),
        secure_cookies=not args.insecure_cookies,
        database=database,
    )
    server.run(host=args.host, port=args.port or config.port)


async def submit_auth(config: AppConfig, args: argparse.Namespace) -> bool:
    identity = FirebaseIdentityClient(config.firebase_api_key)
    backend = BackendClient(config.backend_url)
    form = AuthFormController(args.command, identity, backend, ConsoleNavigator(), ConsoleNotifier())
    values = {"email": args.email, "password": args.password}
    if args.command == "sign-up":
        values["name"] = args.name
    try:
        ok = await form.submit(values)
        for field, message in form.errors.items():
            logger.error(f"{field}: {message}")
        return ok
    finally:
        await identity.aclose()
        await backend.aclose()


async def run_call(config: AppConfig, args: argparse.Namespace) -> bool:
    voice = VapiClient(config.vapi_api_key, base_url=config.vapi_base_url)
    backend = BackendClient(config.backend_url)
    navigator = ConsoleNavigator()
    controller = CallController(
        voice,
        navigator,
        backend,
        user_name=args.user_name,
        user_id=args.user_id,
        mode=args.command,
        interview_id=getattr(args, "interview_id", None),
        feedback_id=getattr(args, "feedback_id", None),
        questions=getattr(args, "questions", None),
        workflow_id=config.workflow_id,
    )
    try:
        async with controller.session():
            await controller.start_call()
            try:
                while controller.status in (CallStatus.CONNECTING, CallStatus.ACTIVE):
                    await asyncio.sleep(POLL_INTERVAL)
            except asyncio.CancelledError:
                if controller.status in (CallStatus.CONNECTING, CallStatus.ACTIVE):
                    await controller.disconnect()
                raise
            await controller.wait_for_feedback()
    finally:
        await voice.aclose()
        await backend.aclose()

    view = controller.snapshot()
    if view.status == CallStatus.ERROR:
        logger.error(f"Call failed: {view.error}")
        return False
    logger.info(f"Call finished with {view.message_count} transcript lines; now at {navigator.current}")
    return True


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    config = AppConfig.from_env()

    if args.command in ("serve", "sign-up", "sign-in") and not config.firebase_api_key:
        logger.error("FIREBASE_API_KEY is not set; it is required for accounts and sign-in")
        return 1
    if args.command == "serve":
        serve(config, args)
        return 0
    if args.command in ("sign-up", "sign-in"):
        return 0 if asyncio.run(submit_auth(config, args)) else 1
    try:
        return 0 if asyncio.run(run_call(config, args)) else 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
