"""
Interactive CLI adapter for routewise.

Architectural role:
- Exposes terminal interaction over a dry-run `RoutewiseEngine`.
- Provides startup observability for registered servers.
- Delegates all parsing/routing/validation to the core engine.

Request lifecycle (per user turn, CLI):
1. Read stdin.
2. Handle local control commands (`exit`/`quit`, `servers`, `/suggest`).
3. Route normal text to `RoutewiseEngine.query` as a dry run.
4. Print the result as JSON followed by its explanation.

Input validation behavior:
- Empty input is ignored.

Error handling strategy:
- EOF and keyboard interrupts terminate the loop without traceback output.
- Pipeline failures are printed as part of the JSON result.

Side effects:
- Saves a learning snapshot on exit.
"""

import asyncio
import json
import logging
import sys

from routewise.core.engine import RoutewiseEngine
from routewise.core.settings import DEBUG


# =========================================================
# UTF-8 SAFE OUTPUT
# Best-effort stdout encoding normalization for interactive terminals.
# =========================================================

if hasattr(sys.stdout, "reconfigure"):
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="ignore")
    except (AttributeError, ValueError, OSError):
        pass


def print_servers(engine: RoutewiseEngine) -> None:
    for reg in engine.list_servers():
        cap = reg.capability
        print(
            f"{reg.name:<16} {reg.status.value:<9} {cap.protocol:<9} "
            f"entities={','.join(cap.entities)} operations={','.join(cap.operations)}"
        )


# =========================================================
# MAIN
# =========================================================

async def run(engine: RoutewiseEngine) -> None:
    """Run the input loop until `exit`, EOF or interrupt."""
    await engine.start()

    print("Routewise console started. (Type 'exit' to quit)")
    print("-" * 60)
    print("REGISTERED SERVERS:\n")
    print_servers(engine)
    print("-" * 60)

    try:
        while True:
            try:
                text = (await asyncio.to_thread(input, "Query: ")).strip()
            except EOFError:
                print()
                break

            if not text:
                continue

            if text.lower() in ("exit", "quit"):
                print("Saving learning data...")
                break

            if text.lower() == "servers":
                print_servers(engine)
                continue

            if text.lower().startswith("/suggest"):
                partial = text[len("/suggest"):].strip()
                for suggestion in engine.get_suggestions(partial):
                    print(f" - {suggestion}")
                continue

            result = await engine.query(text)
            print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
            print(f"\n{result.explanation}\n")
    finally:
        await engine.stop()
        print("Shutting down.")


def main() -> None:
    logging.basicConfig(
        level=logging.DEBUG if DEBUG else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(run(RoutewiseEngine()))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")


if __name__ == "__main__":
    main()
