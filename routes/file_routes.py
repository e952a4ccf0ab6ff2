from fastapi import APIRouter, status
from controllers.file_controller import (
    upload_files, list_files, list_shared_files, get_file, download_file, preview_file,
    update_file, delete_file, share_file, unshare_file, analyze_file, file_stats,
)


file_router = APIRouter(prefix="/api/files", tags=["Files"])

# fixed paths first so they are not captured by /{file_id}
file_router.post("/upload", status_code=status.HTTP_201_CREATED)(upload_files)
file_router.get("/stats")(file_stats)
file_router.get("/shared")(list_shared_files)
file_router.get("/download/{file_id}")(download_file)
file_router.get("/preview/{file_id}")(preview_file)
file_router.get("")(list_files)

file_router.get("/{file_id}")(get_file)
file_router.put("/{file_id}")(update_file)
file_router.delete("/{file_id}")(delete_file)
file_router.post("/{file_id}/analyze")(analyze_file)
file_router.post("/{file_id}/share")(share_file)
file_router.delete("/{file_id}/share/{user_id}")(unshare_file)
