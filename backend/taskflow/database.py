import logging
from contextlib import asynccontextmanager

from motor.motor_asyncio import AsyncIOMotorClient
from taskflow.config import settings

logger = logging.getLogger(__name__)

client: AsyncIOMotorClient = None
db = None


async def connect_db():
    global client, db
    client = AsyncIOMotorClient(settings.MONGODB_URI)
    db = client[settings.MONGODB_DB_NAME]
    await create_indexes()
    return db


async def close_db():
    global client
    if client:
        client.close()


async def create_indexes():
    """Create MongoDB indexes for lookups and uniqueness."""
    # Users: unique email
    await db.users.create_index("email", unique=True)

    # One role document per user
    await db.user_roles.create_index("user_id", unique=True)
    await db.user_roles.create_index("workspaces.workspace_id")
    await db.user_roles.create_index("spaces.space_id")

    # Workspaces
    await db.workspaces.create_index("owner_id")
    await db.workspaces.create_index("members.user_id")

    # Spaces and boards
    await db.spaces.create_index("workspace_id")
    await db.spaces.create_index("members.user_id")
    await db.boards.create_index("space_id")
    await db.boards.create_index("workspace_id")

    # Columns: ordered within a board
    await db.columns.create_index([("board_id", 1), ("position", 1)])

    # Tasks
    await db.tasks.create_index([("board_id", 1), ("column_id", 1)])
    await db.tasks.create_index("assignees")
    await db.tasks.create_index("dependencies.task_id")
    await db.tasks.create_index("due_date")

    await db.checklists.create_index("task_id")
    await db.comments.create_index([("task_id", 1), ("created_at", -1)])

    # Invitations
    await db.invitations.create_index("token", unique=True)
    await db.invitations.create_index([("status", 1), ("expires_at", 1)])
    await db.invitations.create_index("invited_user.email")
    await db.invitations.create_index("target_entity.id")

    # Notifications and reminders
    await db.notifications.create_index([("recipient_id", 1), ("created_at", -1)])
    await db.reminders.create_index([("status", 1), ("is_active", 1), ("scheduled_at", 1)])
    await db.reminders.create_index("user_id")

    # Activity log
    await db.activity_logs.create_index([("workspace_id", 1), ("created_at", -1)])
    await db.activity_logs.create_index([("entity.type", 1), ("entity.id", 1)])


def get_db():
    return db


@asynccontextmanager
async def transaction(session=None):
    """Yield a session bound to a started transaction, or None when disabled.

    Callers pass the yielded value straight through as ``session=`` so the
    same code runs against standalone servers and replica sets. An already
    open ``session`` is yielded as is, so nested service calls join the
    caller's transaction.
    """
    if session is not None:
        yield session
        return
    if not settings.MONGODB_USE_TRANSACTIONS or client is None:
        yield None
        return

    async with await client.start_session() as new_session:
        async with new_session.start_transaction():
            yield new_session
