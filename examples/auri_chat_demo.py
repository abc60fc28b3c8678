"""Minimal demonstration of one streamed Auri exchange.

Reads the bearer token from AURI_TOKEN and points at AURI_API_BASE_URL.
"""

import os

from auri_core import ConversationController
from auri_core.domain.conversation import StaticIdentityProvider
from auri_core.providers import create_chat_transport

if __name__ == "__main__":
    question = "Jag kan inte sova"
    identity = StaticIdentityProvider(os.environ.get("AURI_TOKEN"))
    controller = ConversationController(create_chat_transport(identity), language="sv")
    print("User:", question)
    print("Auri: ", end="", flush=True)
    for event in controller.send_stream(question):
        if event.kind == "delta":
            print(event.delta_text, end="", flush=True)
    print()
    result = controller.last_result
    if controller.demo_badge:
        print(f"[{controller.demo_badge}]")
    if result.plan:
        print("Question:", result.plan.question)
        for action in result.plan.actions:
            print("Action:", action)
