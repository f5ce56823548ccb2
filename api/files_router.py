"""
Files API Router - read-only browsing of the knowledge base.
"""

from fastapi import APIRouter, Query

from lib import kb_files

files_router = APIRouter(prefix="/files", tags=["Files"])


@files_router.get("/list")
def list_directory(path: str = "", include_hidden: bool = False) -> dict:
    return kb_files.list_dir(path, include_hidden=include_hidden)


@files_router.get("/get")
def get_file(path: str = Query(..., min_length=1)) -> dict:
    return kb_files.get_file(path)


@files_router.get("/tree")
def get_tree(path: str = "", depth: int = Query(2, ge=1, le=10), include_hidden: bool = False) -> dict:
    return kb_files.tree(path, depth=depth, include_hidden=include_hidden)


@files_router.get("/search")
def search_files(
    q: str = Query(..., min_length=1),
    path: str = "",
    extensions: list[str] | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    include_hidden: bool = False,
) -> dict:
    return kb_files.search(q, path=path, extensions=extensions, limit=limit, include_hidden=include_hidden)
