"""Task documents: upload, listing, removal and download links.

Uploads are open to anyone who can work on the task, overdue or not; the
temporal lock only covers status changes. Deleting a task removes its
document rows (see tasks.py).
"""

import logging
from datetime import datetime

from workdesk.lib.config import WorkdeskConfig
from workdesk.lib.constants import CLIENTS, DOCUMENTS
from workdesk.lib.errors import Forbidden, StorageFailure, not_found
from workdesk.lib.roles import capabilities_of
from workdesk.lib.types import Actor, Document, Task, to_iso
from workdesk.storage.objects import LocalObjectStorage, object_path
from workdesk.store.records import RecordStore, new_id
from workdesk.workflow.tasks import TaskService, is_assignee

logger = logging.getLogger(__name__)


class DocumentService:

    def __init__(
        self,
        store: RecordStore,
        storage: LocalObjectStorage,
        config: WorkdeskConfig | None = None,
    ):
        self.store = store
        self.storage = storage
        self.config = config or WorkdeskConfig()
        self.tasks = TaskService(store)

    def _check_task_access(self, task: Task, actor: Actor, action: str) -> None:
        if not (capabilities_of(actor).can_edit_any_task or is_assignee(task, actor)):
            raise Forbidden(action, actor.id, f"task {task.id} is not assigned to them")

    def get_document(self, document_id: str) -> Document:
        row = self.store.get(DOCUMENTS, document_id)
        if row is None:
            raise not_found(DOCUMENTS, document_id)
        return Document.from_row(row)

    def list_documents(self, task_id: str | None = None) -> list[Document]:
        where = {"task_id": task_id} if task_id else None
        rows = self.store.select(DOCUMENTS, where=where, order_by="uploaded_at", descending=True)
        return [Document.from_row(row) for row in rows]

    def upload_document(
        self,
        task_id: str,
        file_name: str,
        data: bytes,
        actor: Actor,
        now: datetime,
        file_type: str | None = None,
    ) -> Document:
        """Store a file under the task and record it.

        A file with the same name under the same task replaces the stored
        object, and the existing document row is refreshed rather than
        duplicated.
        """
        task = self.tasks.get_task(task_id)
        self._check_task_access(task, actor, "upload documents")

        client = self.store.get(CLIENTS, task.client_id)
        client_name = client["name"] if client else task.client_id
        path = object_path(client_name, task.title, file_name)

        self.storage.upload(path, data)

        existing = self.store.select(DOCUMENTS, where={"task_id": task_id, "location_ref": path})
        if existing:
            row = self.store.update(DOCUMENTS, existing[0]["id"], {
                "uploaded_by": actor.id,
                "uploaded_at": to_iso(now),
                "file_type": file_type,
            })
            logger.info(f"[DOCS] {path}: replaced by {actor.id}")
            return Document.from_row(row)

        document = Document(
            id=new_id(),
            uploaded_by=actor.id,
            file_name=path.rsplit("/", 1)[-1],
            location_ref=path,
            task_id=task_id,
            client_id=task.client_id,
            file_type=file_type,
            uploaded_at=now,
        )
        self.store.insert(DOCUMENTS, document.to_row())
        logger.info(f"[DOCS] {path}: uploaded by {actor.id}")
        return document

    def delete_document(self, document_id: str, actor: Actor) -> Document:
        """Delete a document row and its stored object.

        Privileged actors and the uploader may delete. A failure removing the
        object is logged; the row is deleted regardless.
        """
        document = self.get_document(document_id)
        if not (capabilities_of(actor).can_edit_any_task or document.uploaded_by == actor.id):
            raise Forbidden("delete documents", actor.id, "not the uploader")

        self.store.delete(DOCUMENTS, document_id)
        try:
            self.storage.remove(document.location_ref)
        except StorageFailure as e:
            logger.warning(f"[DOCS] {document.location_ref}: row deleted but object kept: {e}")
        logger.info(f"[DOCS] {document.location_ref}: deleted by {actor.id}")
        return document

    def download_link(self, document: Document) -> str:
        """Signed forced-download link, or the direct reference if signing fails."""
        try:
            return self.storage.create_signed_url(
                document.location_ref,
                expires_in=self.config.signed_url_ttl_seconds,
                download=document.file_name,
            )
        except StorageFailure as e:
            logger.warning(f"[DOCS] {document.location_ref}: signed link failed, using direct reference: {e}")
            return self.storage.public_url(document.location_ref)
