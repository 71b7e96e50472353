# FILE: app/utils/db_manager.py
# ==============================================================================
import functools
from ..database import AsyncSessionLocal

def db_session_manager(func):
    """
    A decorator to automatically handle async database session management.

    Callers that already hold a session (request handlers, tests) may pass it
    as ``db=`` and it is used as-is; otherwise a fresh session is opened.
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        if kwargs.get("db") is not None:
            return await func(*args, **kwargs)
        kwargs.pop("db", None)
        async with AsyncSessionLocal() as session:
            try:
                # Pass the async session to the wrapped function
                return await func(*args, db=session, **kwargs)
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()
    return wrapper
