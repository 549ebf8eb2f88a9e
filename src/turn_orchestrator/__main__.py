import asyncio

from dotenv import load_dotenv
from loguru import logger

from turn_orchestrator.app_config import AppConfig, load_json_config, parse_app_config, resolve_runtime_env
from turn_orchestrator.bootstrap import bootstrap_runtime
from turn_orchestrator.contracts import RunAgentOptions
from turn_orchestrator.errors import CoreError, failure_hint


def _options(app: AppConfig, *, new_session: bool = False) -> RunAgentOptions:
    return RunAgentOptions(
        provider=app.provider,
        profile_id=app.profile_id,
        session_key=app.session_key,
        new_session=new_session,
        memory=app.memory_enabled,
        with_tools=app.with_tools,
        tool_allow=tuple(app.tool_allow),
        cwd=app.working_directory,
    )


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    runtime = await bootstrap_runtime(app, resolve_runtime_env())

    print("turn-orchestrator (type 'exit' to quit, '/new' for a new session)")
    print(f"Provider: {app.provider} (profile: {app.profile_id})")
    print(f"Session key: {app.session_key}")
    if app.with_tools:
        print(f"Tools: {', '.join(runtime.registry.names())}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                if trimmed == "/new":
                    outcome = await runtime.coordinator.run_agent("", _options(app, new_session=True))
                    print(f"New session: {outcome.session_id}\n")
                    continue

                outcome = await runtime.coordinator.run_agent(trimmed, _options(app))
                print(f"{outcome.text}\n")
            except CoreError as ex:
                print(f"[{ex.code}] {failure_hint(ex)}\n")
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        await runtime.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
