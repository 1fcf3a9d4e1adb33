# discovery/db/transactions.py
from contextlib import asynccontextmanager
from motor.motor_asyncio import AsyncIOMotorClient


@asynccontextmanager
async def transaction(client: AsyncIOMotorClient):
    """
    Yield a session inside a started transaction. Leaving the block normally
    commits; an exception aborts. Not retried here: callers decide.
    """
    async with await client.start_session() as session:
        async with session.start_transaction():
            yield session
