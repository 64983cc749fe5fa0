import asyncio
import os
from typing import Annotated

from dotenv import load_dotenv
from openai import AsyncOpenAI
from pydantic import Field

from relance_lib import (
    OpenAIModelClient,
    OpenAIToolRegistry,
    OrchestratorSettings,
    ToolOrchestrator,
    setup_logging,
)

# Load environment variables
load_dotenv()

NOTES: dict = {}


def create_folder(name: Annotated[str, Field(description="Name of the folder to create")], auth_context=None) -> dict:
    """Create a folder for the current user."""
    owner = (auth_context or {}).get("user", "anonymous")
    NOTES.setdefault((owner, name), [])
    return {"folder": name, "owner": owner}


async def create_note(
    folder: Annotated[str, Field(description="Folder the note goes into")],
    title: Annotated[str, Field(description="Title of the note")],
    auth_context=None,
) -> dict:
    """Create a note inside an existing folder."""
    owner = (auth_context or {}).get("user", "anonymous")
    if (owner, folder) not in NOTES:
        raise ValueError(f"Folder '{folder}' does not exist")
    NOTES[(owner, folder)].append(title)
    return {"folder": folder, "title": title}


async def main() -> None:
    """
    Main function to run the CLI chat using OpenAI.
    """
    print("Welcome to the CLI Chat (OpenAI)!")

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        print("Error: OPENAI_API_KEY not found in environment variables.")
        return

    setup_logging()
    settings = OrchestratorSettings()

    registry = OpenAIToolRegistry()
    registry.register(create_folder)
    registry.register(create_note)

    client = OpenAIModelClient(
        client=AsyncOpenAI(api_key=api_key),
        model_name=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        registry=registry,
    )
    orchestrator = ToolOrchestrator(registry, client, settings)
    history = orchestrator.new_history(
        "You are a note-taking assistant. Use the tools to act, then answer in plain sentences, never in JSON."
    )

    print("\nStart chatting! Type 'exit' or 'quit' to stop.")
    while True:
        user_input = input("\nYou: ").strip()
        if user_input.lower() in ["exit", "quit"]:
            print("Goodbye!")
            break

        if not user_input:
            continue

        outcome = await orchestrator.handle_message(history, user_input, auth_context={"user": "cli"})
        print(f"Assistant: {outcome.final_text}")
        if outcome.forced:
            print(f"(stopped: {outcome.stop_reason})")


if __name__ == "__main__":
    asyncio.run(main())
