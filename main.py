import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, FastAPI, Query, Response, status
from fastapi.middleware.cors import CORSMiddleware
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import SESSION_COOKIE, SessionProvider, get_current_user, get_sessions, session_token
from config import Settings, get_settings
from database import connect, ensure_indexes, get_db, maybe_oid, oid, parse_datetime, serialize, utcnow
from errors import Conflict, Forbidden, NotFound, ValidationError, install_error_handlers
from logging_setup import setup_logging
from schemas import (
    BIO_MAX_LENGTH,
    DEFAULT_TAG_COLOR,
    BulkDeleteRequest,
    BulkUpdateRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    TagCreate,
    TagUpdate,
    TaskCreate,
    TaskUpdate,
)
from views import derive

logger = logging.getLogger(__name__)

router = APIRouter()

# -----------------------------
# Projections
# -----------------------------
OWNER_FIELDS = ("name", "email")
OWNER_DETAIL_FIELDS = ("name", "email", "avatar")
PROFILE_FIELDS = ("name", "email", "avatar", "bio", "created_at")


def project_user(user: Optional[Dict[str, Any]], fields=OWNER_FIELDS) -> Optional[Dict[str, Any]]:
    if not user:
        return None
    return serialize({"_id": user["_id"], **{f: user.get(f) for f in fields}})


def owners_by_id(db: Database, tasks: List[Dict[str, Any]], fields=OWNER_FIELDS) -> Dict[ObjectId, Dict[str, Any]]:
    ids = list({t["user_id"] for t in tasks})
    cursor = db["user"].find({"_id": {"$in": ids}})
    return {u["_id"]: project_user(u, fields) for u in cursor}


def render_task(task: Dict[str, Any], owner: Optional[Dict[str, Any]], tags=None) -> Dict[str, Any]:
    out = serialize(task)
    out["user"] = owner
    if tags is not None:
        out["tags"] = tags
    return out


def render_task_detail(db: Database, task: Dict[str, Any]) -> Dict[str, Any]:
    owner = project_user(db["user"].find_one({"_id": task["user_id"]}), OWNER_DETAIL_FIELDS)
    tag_ids = task.get("tag_ids") or []
    tags = [serialize(t) for t in db["tag"].find({"_id": {"$in": tag_ids}}).sort("name", ASCENDING)]
    return render_task(task, owner, tags)


# -----------------------------
# Ownership helpers
# -----------------------------

def load_owned(db: Database, collection: str, record_id: str, user: Dict[str, Any], label: str) -> Dict[str, Any]:
    """Fetch a record by id, 404 if absent, 403 if the caller is not its owner."""
    _id = maybe_oid(record_id)
    doc = db[collection].find_one({"_id": _id}) if _id else None
    if not doc:
        raise NotFound(f"{label} not found")
    if doc["user_id"] != user["_id"]:
        logger.warning("User %s denied access to %s %s", user["_id"], collection, record_id)
        raise Forbidden(f"You can only modify your own {collection}s")
    return doc


def owned_tag_ids(db: Database, tag_ids: List[str], user: Dict[str, Any]) -> List[ObjectId]:
    """Parse tag ids and check they all belong to the caller; order kept, duplicates dropped."""
    ids = list(dict.fromkeys(oid(t) for t in tag_ids))
    if ids and db["tag"].count_documents({"_id": {"$in": ids}, "user_id": user["_id"]}) != len(ids):
        raise ValidationError("Unknown tag")
    return ids


def verify_owned_tasks(db: Database, task_ids: List[str], user: Dict[str, Any], action: str) -> List[ObjectId]:
    if not task_ids:
        raise ValidationError("Task IDs are required")
    ids = list(dict.fromkeys(oid(t) for t in task_ids))
    owned = db["task"].count_documents({"_id": {"$in": ids}, "user_id": user["_id"]})
    if owned != len(ids):
        logger.warning("User %s tried to %s tasks they do not own", user["_id"], action)
        raise Forbidden(f"You can only {action} your own tasks")
    return ids


# -----------------------------
# Auth endpoints
# -----------------------------
@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, sessions: SessionProvider = Depends(get_sessions)):
    user = sessions.register(body.name, body.email, body.password)
    return project_user(user, PROFILE_FIELDS)


@router.post("/auth/login")
def login(
    body: LoginRequest,
    response: Response,
    sessions: SessionProvider = Depends(get_sessions),
    settings: Settings = Depends(get_settings),
):
    token, user = sessions.login(body.email, body.password)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=int(settings.session_ttl.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )
    return {"token": token, "user": project_user(user, PROFILE_FIELDS)}


@router.post("/auth/logout")
def logout(
    response: Response,
    token: Optional[str] = Depends(session_token),
    sessions: SessionProvider = Depends(get_sessions),
):
    sessions.logout(token)
    response.delete_cookie(SESSION_COOKIE)
    return {"message": "Logged out"}


@router.get("/me")
def me(user=Depends(get_current_user)):
    return project_user(user, PROFILE_FIELDS)


# -----------------------------
# Task endpoints
# -----------------------------
@router.get("/tasks")
def list_tasks(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    search: Optional[str] = None,
    sort: Optional[str] = None,
    db: Database = Depends(get_db),
):
    tasks = list(db["task"].find().sort([("created_at", DESCENDING), ("_id", DESCENDING)]))
    owners = owners_by_id(db, tasks)
    rendered = [render_task(t, owners.get(t["user_id"])) for t in tasks]
    if status_filter or search or sort:
        try:
            rendered = derive(rendered, status=status_filter, query=search, sort=sort)
        except ValueError as e:
            raise ValidationError(str(e))
    return rendered


@router.post("/tasks", status_code=status.HTTP_201_CREATED)
def create_task(body: TaskCreate, user=Depends(get_current_user), db: Database = Depends(get_db)):
    title = (body.title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    now = utcnow()
    doc = {
        "title": title,
        "description": body.description or "",
        "status": body.status or "pending",
        "due_date": parse_datetime(body.due_date),
        "user_id": user["_id"],
        "tag_ids": [],
        "created_at": now,
        "updated_at": now,
    }
    res = db["task"].insert_one(doc)
    task = db["task"].find_one({"_id": res.inserted_id})
    logger.info("User %s created task %s", user["_id"], res.inserted_id)
    return render_task(task, project_user(user))


# Registered before /tasks/{task_id} so "bulk" is not taken for an id.
@router.put("/tasks/bulk")
def bulk_update_tasks(body: BulkUpdateRequest, user=Depends(get_current_user), db: Database = Depends(get_db)):
    if not body.task_ids:
        raise ValidationError("Task IDs are required")
    updates = body.updates
    provided = updates.model_fields_set if updates else set()
    if not provided:
        raise ValidationError("Updates are required")

    ids = verify_owned_tasks(db, body.task_ids, user, "update")
    where = {"_id": {"$in": ids}, "user_id": user["_id"]}
    now = utcnow()

    if updates.add_tag_ids is not None:
        tag_ids = owned_tag_ids(db, updates.add_tag_ids, user)
        result = db["task"].update_many(
            where,
            {"$addToSet": {"tag_ids": {"$each": tag_ids}}, "$set": {"updated_at": now}},
        )
        logger.info("User %s added %d tag(s) to %d task(s)", user["_id"], len(tag_ids), result.matched_count)
        return {"message": "Tasks updated successfully", "count": result.matched_count}

    changes: Dict[str, Any] = {}
    if updates.status is not None:
        changes["status"] = updates.status
    if "due_date" in provided:
        changes["due_date"] = parse_datetime(updates.due_date)
    if not changes:
        raise ValidationError("Updates are required")
    changes["updated_at"] = now
    result = db["task"].update_many(where, {"$set": changes})
    logger.info("User %s bulk-updated %d task(s)", user["_id"], result.matched_count)
    return {"message": "Tasks updated successfully", "count": result.matched_count}


@router.delete("/tasks/bulk")
def bulk_delete_tasks(body: BulkDeleteRequest, user=Depends(get_current_user), db: Database = Depends(get_db)):
    ids = verify_owned_tasks(db, body.task_ids, user, "delete")
    result = db["task"].delete_many({"_id": {"$in": ids}, "user_id": user["_id"]})
    logger.info("User %s bulk-deleted %d task(s)", user["_id"], result.deleted_count)
    return {"message": "Tasks deleted successfully", "count": result.deleted_count}


@router.get("/tasks/{task_id}")
def get_task(task_id: str, db: Database = Depends(get_db)):
    _id = maybe_oid(task_id)
    task = db["task"].find_one({"_id": _id}) if _id else None
    if not task:
        raise NotFound("Task not found")
    return render_task_detail(db, task)


@router.put("/tasks/{task_id}")
def update_task(task_id: str, body: TaskUpdate, user=Depends(get_current_user), db: Database = Depends(get_db)):
    task = load_owned(db, "task", task_id, user, "Task")
    provided = body.model_fields_set
    update: Dict[str, Any] = {}
    if "title" in provided:
        title = (body.title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        update["title"] = title
    if "description" in provided:
        update["description"] = body.description or ""
    if "status" in provided and body.status is not None:
        update["status"] = body.status
    if "due_date" in provided:
        update["due_date"] = parse_datetime(body.due_date)
    if "tag_ids" in provided:
        update["tag_ids"] = owned_tag_ids(db, body.tag_ids or [], user)
    if update:
        update["updated_at"] = utcnow()
        db["task"].update_one({"_id": task["_id"]}, {"$set": update})
        task = db["task"].find_one({"_id": task["_id"]})
    return render_task_detail(db, task)


@router.delete("/tasks/{task_id}")
def delete_task(task_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    task = load_owned(db, "task", task_id, user, "Task")
    db["task"].delete_one({"_id": task["_id"]})
    logger.info("User %s deleted task %s", user["_id"], task["_id"])
    return {"message": "Task deleted successfully"}


# -----------------------------
# Tag endpoints
# -----------------------------
@router.get("/tags")
def list_tags(user=Depends(get_current_user), db: Database = Depends(get_db)):
    cursor = db["tag"].find({"user_id": user["_id"]}).sort("name", ASCENDING)
    return [serialize(t) for t in cursor]


@router.post("/tags", status_code=status.HTTP_201_CREATED)
def create_tag(body: TagCreate, user=Depends(get_current_user), db: Database = Depends(get_db)):
    name = (body.name or "").strip()
    if not name:
        raise ValidationError("Tag name is required")
    if db["tag"].find_one({"user_id": user["_id"], "name": name}):
        raise Conflict("Tag already exists")
    now = utcnow()
    doc = {
        "name": name,
        "color": body.color or DEFAULT_TAG_COLOR,
        "user_id": user["_id"],
        "created_at": now,
        "updated_at": now,
    }
    try:
        res = db["tag"].insert_one(doc)
    except DuplicateKeyError:
        raise Conflict("Tag already exists")
    return serialize(db["tag"].find_one({"_id": res.inserted_id}))


@router.put("/tags/{tag_id}")
def update_tag(tag_id: str, body: TagUpdate, user=Depends(get_current_user), db: Database = Depends(get_db)):
    tag = load_owned(db, "tag", tag_id, user, "Tag")
    update: Dict[str, Any] = {}
    if body.name is not None:
        name = body.name.strip()
        if not name:
            raise ValidationError("Tag name is required")
        if name != tag["name"] and db["tag"].find_one({"user_id": user["_id"], "name": name}):
            raise Conflict("Tag already exists")
        update["name"] = name
    if body.color is not None:
        update["color"] = body.color
    if update:
        update["updated_at"] = utcnow()
        try:
            db["tag"].update_one({"_id": tag["_id"]}, {"$set": update})
        except DuplicateKeyError:
            raise Conflict("Tag already exists")
    return serialize(db["tag"].find_one({"_id": tag["_id"]}))


@router.delete("/tags/{tag_id}")
def delete_tag(tag_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    tag = load_owned(db, "tag", tag_id, user, "Tag")
    db["tag"].delete_one({"_id": tag["_id"]})
    cleaned = db["task"].update_many({"tag_ids": tag["_id"]}, {"$pull": {"tag_ids": tag["_id"]}})
    logger.info("User %s deleted tag %s (removed from %d task(s))", user["_id"], tag["_id"], cleaned.modified_count)
    return {"message": "Tag deleted successfully"}


# -----------------------------
# Profile
# -----------------------------
@router.get("/profile")
def get_profile(user=Depends(get_current_user), db: Database = Depends(get_db)):
    current = db["user"].find_one({"_id": user["_id"]})
    if not current:
        logger.error("Session user %s has no user record", user["_id"])
        raise NotFound("User not found")
    return project_user(current, PROFILE_FIELDS)


@router.put("/profile")
def update_profile(body: ProfileUpdate, user=Depends(get_current_user), db: Database = Depends(get_db)):
    name = (body.name or "").strip()
    if not name:
        raise ValidationError("Name is required")
    if body.bio and len(body.bio) > BIO_MAX_LENGTH:
        raise ValidationError(f"Bio must be at most {BIO_MAX_LENGTH} characters")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"name": name, "avatar": body.avatar or None, "bio": body.bio or None, "updated_at": utcnow()}},
    )
    return get_profile(user, db)


# -----------------------------
# Health
# -----------------------------
@router.get("/")
def read_root():
    return {"message": "Taskboard API running"}


@router.get("/health")
def health(db: Database = Depends(get_db)):
    response = {"backend": "running", "database": "unavailable", "collections": []}
    try:
        db.command("ping")
        response["database"] = "connected"
        response["collections"] = sorted(db.list_collection_names())[:10]
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        response["database"] = "error"
    return response


# -----------------------------
# App factory
# -----------------------------

def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    settings = settings or get_settings()
    if db is None:
        db = connect(settings)
    ensure_indexes(db)

    app = FastAPI(title="Taskboard API")
    app.state.settings = settings
    app.state.db = db
    app.state.sessions = SessionProvider(
        db,
        session_ttl=settings.session_ttl,
        update_age=settings.session_update_age,
        bcrypt_rounds=settings.bcrypt_rounds,
    )
    app.dependency_overrides[get_settings] = lambda: settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=not settings.cors_allows_any_origin,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)
    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    setup_logging(_settings.log_level, _settings.log_dir)
    uvicorn.run(create_app(_settings), host=_settings.host, port=_settings.port)
