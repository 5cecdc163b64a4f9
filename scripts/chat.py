"""Interactive terminal chat against a running streamchat server"""

import argparse
import asyncio
import sys

import httpx
from loguru import logger

from streamchat.client.api import HttpChatApi
from streamchat.client.controller import ConversationController, ConversationState, Phase
from streamchat.config import settings

HELP = """Commands:
  /new                  start a new chat
  /list                 list chats
  /open <id>            open a chat
  /rename <id> <title>  rename a chat
  /delete <id>          delete a chat
  /quit                 exit
Anything else is sent as a message."""


class StreamPrinter:
    """Prints the reply as it streams in."""

    def __init__(self) -> None:
        self.printed = 0

    def __call__(self, state: ConversationState) -> None:
        if state.phase is not Phase.STREAMING:
            self.printed = 0
            return
        new_text = state.streaming_buffer[self.printed :]
        if new_text:
            print(new_text, end="", flush=True)
            self.printed = len(state.streaming_buffer)


def print_chats(controller: ConversationController) -> None:
    for chat in controller.state.chats:
        marker = "*" if chat.id == controller.state.active_chat_id else " "
        print(f"{marker} {chat.id}  {chat.created_at:%b %d}  {chat.title}")


def print_transcript(controller: ConversationController) -> None:
    for turn in controller.visible_messages():
        print(f"[{turn.role}] {turn.content}")


async def handle_command(controller: ConversationController, line: str) -> bool:
    """Run a slash command. Returns False when the session should end."""
    command, _, argument = line.partition(" ")
    if command == "/quit":
        return False
    if command == "/new":
        controller.new_chat()
    elif command == "/list":
        await controller.load_chats()
        print_chats(controller)
    elif command == "/open":
        if await controller.select_chat(argument.strip()):
            print_transcript(controller)
        else:
            print(f"Could not open chat: {controller.state.error}")
    elif command == "/rename":
        chat_id, _, title = argument.strip().partition(" ")
        if not await controller.rename_chat(chat_id, title):
            print("Could not rename chat")
    elif command == "/delete":
        if not await controller.delete_chat(argument.strip()):
            print("Could not delete chat")
    else:
        print(HELP)
    return True


async def main(base_url: str) -> None:
    async with httpx.AsyncClient(base_url=base_url, timeout=None) as client:
        controller = ConversationController(HttpChatApi(client), on_change=StreamPrinter())
        await controller.load_chats()
        print(HELP)

        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            line = line.strip()
            if line.startswith("/"):
                if not await handle_command(controller, line):
                    break
                continue

            if await controller.send_message(line):
                print()
            elif line:
                print(f"\nMessage failed: {controller.state.error}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--base-url",
        type=str,
        required=False,
        help="Base URL of the chat server",
        default=settings.api_base_url,
    )
    parser.add_argument("--log-level", type=str, required=False, default="WARNING")

    args = parser.parse_args()
    logger.configure(handlers=[{"sink": sys.stderr, "level": args.log_level}])

    asyncio.run(main(base_url=args.base_url))
