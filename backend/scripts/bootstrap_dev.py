"""
Dev bootstrap script — create a user, an agent and an API key locally.

Usage (from backend/):
    python -m scripts.bootstrap_dev [email]

This will:
  1. Create (or reuse) a local user, default "dev@example.com"
  2. Create an agent for that user
  3. Generate an API key and print the raw key ONCE (it is never stored)
"""

import asyncio
import sys
import uuid

from promptiq.auth.hashing import generate_api_key
from promptiq.core.database import async_session_factory, engine
from promptiq.services.credential_store import SqlCredentialStore


async def main(email: str) -> None:
    async with async_session_factory() as session:
        store = SqlCredentialStore(session)

        user = await store.find_user_by_email(email)
        if user is None:
            user = await store.create_user(email=email, first_name="Dev", role="ADMIN")

        agent = await store.create_agent(
            user_id=user.id,
            name="Dev Agent",
            slug=f"dev-agent-{uuid.uuid4().hex[:8]}",
            system_prompt="You are a helpful assistant.",
        )

        generated = generate_api_key()
        await store.create_api_key(
            user_id=user.id,
            agent_id=agent.id,
            name="Dev Key",
            key_prefix=generated.prefix,
            key_hash=generated.key_hash,
            permissions=["chat", "history", "feedback"],
        )

    print()
    print("=" * 60)
    print("  Dev Bootstrap Complete")
    print("=" * 60)
    print()
    print(f"  User:       {user.email} ({user.id})")
    print(f"  Agent:      {agent.name} ({agent.id})")
    print()
    print(f"  API Key:    {generated.raw_key}")
    print()
    print("  ⚠  Copy this key now — it will NEVER be shown again.")
    print("=" * 60)
    print()

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "dev@example.com"))
