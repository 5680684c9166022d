"""JobBoardStore backed by Cloud Firestore (the web application's database).

Talks to the Firestore v1 REST API through the Google API discovery client,
using a service account (or Application Default Credentials).  Collections:

  jobs                    published postings
  counters/jobs           ``{current: int}``, the serial counter
  tzintukSubscriptions    locally filtered alert subscriptions
  config/paymentSettings  payment gating flags and prices
  users                   web-app profiles (unlocks, subscription window)
  paymentTransactions     one immutable record per successful charge
  contactMessages         voice messages from the contact line
  idempotencyKeys         result of each keyed job creation, by key
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Any, Optional

import google.auth
import google_auth_httplib2
import httplib2
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from pydantic import ValidationError

from jobline.errors import StoreError
from jobline.models import (
    CallerProfile,
    ContactMessage,
    Entitlement,
    EntitlementKind,
    JobPostingDraft,
    JobRecord,
    JobStat,
    PaymentSettings,
    SubscriptionRecord,
    Transaction,
)

from .base import DEFAULT_QUERY_LIMIT, JobBoardStore, phone_user_id

log = logging.getLogger("jobline.stores.firestore")

SCOPES = ["https://www.googleapis.com/auth/datastore"]

JOBS = "jobs"
COUNTERS = "counters"
SUBSCRIPTIONS = "tzintukSubscriptions"
CONFIG = "config"
USERS = "users"
TRANSACTIONS = "paymentTransactions"
CONTACT_MESSAGES = "contactMessages"
IDEMPOTENCY_KEYS = "idempotencyKeys"

# Contended transactions come back ABORTED (409); retry this many times
MAX_TRANSACTION_ATTEMPTS = 5

_FRACTION = re.compile(r"\.(\d{6})\d+")


# ── Value encoding ───────────────────────────────────────────────

def encode_value(value: Any) -> dict:
    """Encode a Python value as a Firestore REST ``Value``."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        stamp = value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        return {"timestampValue": stamp}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple, set)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    return {"stringValue": str(value)}


def encode_fields(data: dict[str, Any]) -> dict[str, dict]:
    return {key: encode_value(value) for key, value in data.items()}


def decode_value(value: dict) -> Any:
    """Decode a Firestore REST ``Value`` into plain Python."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return value["booleanValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        # Firestore sends up to nanoseconds; datetime keeps microseconds
        stamp = _FRACTION.sub(r".\1", value["timestampValue"]).replace("Z", "+00:00")
        return datetime.fromisoformat(stamp)
    if "stringValue" in value:
        return value["stringValue"]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "referenceValue" in value:
        return value["referenceValue"]
    return None


def decode_fields(fields: dict[str, dict]) -> dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def _doc_id(name: str) -> str:
    return name.rsplit("/", 1)[-1]


def _field_filter(path: str, value: Any) -> dict:
    return {
        "fieldFilter": {
            "field": {"fieldPath": path},
            "op": "EQUAL",
            "value": encode_value(value),
        }
    }


def _status(exc: HttpError) -> int:
    return int(getattr(exc.resp, "status", 0))


class FirestoreStore(JobBoardStore):
    """JobBoardStore over the Firestore v1 REST API.

    Args:
        project: GCP project id.
        service_account_path: path to a service-account JSON key; when
            empty, Application Default Credentials are used.
        service: a pre-built discovery resource (tests pass a mock).
    """

    def __init__(
        self,
        project: str,
        service_account_path: str = "",
        service: Optional[Any] = None,
    ) -> None:
        self._credentials = None
        if service is None:
            if service_account_path:
                self._credentials = Credentials.from_service_account_file(
                    service_account_path, scopes=SCOPES
                )
            else:
                self._credentials, _ = google.auth.default(scopes=SCOPES)
            service = build(
                "firestore", "v1", credentials=self._credentials, cache_discovery=False
            )
        self._documents = service.projects().databases().documents()
        self._database = f"projects/{project}/databases/(default)"
        self._root = f"{self._database}/documents"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _http(self):
        # httplib2 is not thread-safe; each executor call gets its own
        if self._credentials is None:
            return None
        return google_auth_httplib2.AuthorizedHttp(self._credentials, http=httplib2.Http())

    async def _execute(self, request) -> Any:
        """Run a discovery request in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(request.execute, http=self._http()))

    def _name(self, collection: str, doc_id: str) -> str:
        return f"{self._root}/{collection}/{doc_id}"

    async def _get(self, name: str, transaction: str = "") -> Optional[dict]:
        kwargs = {"name": name}
        if transaction:
            kwargs["transaction"] = transaction
        try:
            return await self._execute(self._documents.get(**kwargs))
        except HttpError as exc:
            if _status(exc) == 404:
                return None
            raise

    async def _run_query(self, structured_query: dict) -> list[dict]:
        rows = await self._execute(
            self._documents.runQuery(
                parent=self._root, body={"structuredQuery": structured_query}
            )
        )
        return [row["document"] for row in rows or [] if "document" in row]

    async def _commit(self, writes: list[dict], transaction: str = "") -> dict:
        body: dict[str, Any] = {"writes": writes}
        if transaction:
            body["transaction"] = transaction
        return await self._execute(self._documents.commit(database=self._database, body=body))

    async def _create(self, collection: str, doc_id: str, data: dict) -> bool:
        """Create a document; returns False when ``doc_id`` already exists."""
        request = self._documents.createDocument(
            parent=self._root,
            collectionId=collection,
            documentId=doc_id,
            body={"fields": encode_fields(data)},
        )
        try:
            await self._execute(request)
        except HttpError as exc:
            if _status(exc) == 409:
                return False
            raise
        return True

    # ------------------------------------------------------------------
    # JobBoardStore interface
    # ------------------------------------------------------------------

    async def create_job(
        self,
        draft: JobPostingDraft,
        *,
        posted_at: Optional[datetime] = None,
        idempotency_key: str = "",
    ) -> tuple[str, int]:
        """Increment ``counters/jobs`` and write the job in one transaction."""
        posted_at = posted_at or datetime.now(timezone.utc)
        counter_name = self._name(COUNTERS, JOBS)
        key_name = self._name(IDEMPOTENCY_KEYS, idempotency_key) if idempotency_key else ""
        job_id = secrets.token_hex(10)

        for attempt in range(1, MAX_TRANSACTION_ATTEMPTS + 1):
            try:
                began = await self._execute(
                    self._documents.beginTransaction(database=self._database, body={})
                )
                transaction = began["transaction"]

                if key_name:
                    previous = await self._get(key_name, transaction)
                    if previous is not None:
                        data = decode_fields(previous.get("fields", {}))
                        await self._execute(self._documents.rollback(
                            database=self._database, body={"transaction": transaction}
                        ))
                        log.info("create_job replayed for key %s", idempotency_key)
                        return data["jobId"], data["serialNumber"]

                counter = await self._get(counter_name, transaction)
                last = decode_fields(counter.get("fields", {})).get("current", 0) if counter else 0
                serial = int(last) + 1

                record = draft.build_record(serial, posted_at)
                writes = [
                    {"update": {"name": counter_name, "fields": encode_fields({"current": serial})}},
                    {
                        "update": {"name": self._name(JOBS, job_id), "fields": encode_fields(record.to_document())},
                        "currentDocument": {"exists": False},
                    },
                ]
                if key_name:
                    writes.append({
                        "update": {"name": key_name, "fields": encode_fields({
                            "jobId": job_id, "serialNumber": serial, "createdAt": posted_at,
                        })},
                    })
                await self._commit(writes, transaction)
            except HttpError as exc:
                if _status(exc) == 409 and attempt < MAX_TRANSACTION_ATTEMPTS:
                    log.warning("create_job transaction contended (attempt %d), retrying", attempt)
                    continue
                raise StoreError(f"create_job failed: {exc}") from exc

            log.info("Job %s created with serial %d", job_id, serial)
            return job_id, serial

        raise StoreError("create_job: transaction attempts exhausted")

    async def increment_job_stat(self, job_id: str, stat: JobStat) -> None:
        write = {
            "transform": {
                "document": self._name(JOBS, job_id),
                "fieldTransforms": [
                    {"fieldPath": stat.value, "increment": {"integerValue": "1"}},
                ],
            },
            "currentDocument": {"exists": True},
        }
        try:
            await self._commit([write])
        except HttpError as exc:
            raise StoreError(f"increment {stat.value} on {job_id} failed: {exc}") from exc

    async def query_jobs(self, limit: int = DEFAULT_QUERY_LIMIT) -> list[JobRecord]:
        try:
            documents = await self._run_query({
                "from": [{"collectionId": JOBS}],
                "where": _field_filter("isPosted", True),
                "orderBy": [{"field": {"fieldPath": "postedDate"}, "direction": "DESCENDING"}],
                "limit": limit,
            })
        except HttpError as exc:
            raise StoreError(f"query_jobs failed: {exc}") from exc
        jobs: list[JobRecord] = []
        for doc in documents:
            job_id = _doc_id(doc["name"])
            try:
                jobs.append(JobRecord.model_validate(
                    {**decode_fields(doc.get("fields", {})), "id": job_id}
                ))
            except ValidationError as exc:
                log.warning("Skipping malformed job document %s: %d errors",
                            job_id, exc.error_count())
        return jobs

    async def create_subscription(
        self, record: SubscriptionRecord, *, idempotency_key: str = ""
    ) -> str:
        # A keyed creation uses the key as document id, so a replay finds
        # the existing document instead of adding a second one.
        doc_id = idempotency_key or secrets.token_hex(10)
        try:
            created = await self._create(SUBSCRIPTIONS, doc_id, record.to_document())
        except HttpError as exc:
            raise StoreError(f"create_subscription failed: {exc}") from exc
        if not created:
            log.info("Subscription %s already created", doc_id)
        return doc_id

    async def find_active_subscription(self, phone: str) -> Optional[SubscriptionRecord]:
        try:
            documents = await self._run_query({
                "from": [{"collectionId": SUBSCRIPTIONS}],
                "where": {
                    "compositeFilter": {
                        "op": "AND",
                        "filters": [_field_filter("phone", phone), _field_filter("isActive", True)],
                    }
                },
                "limit": 1,
            })
        except HttpError as exc:
            raise StoreError(f"find_active_subscription failed: {exc}") from exc
        if not documents:
            return None
        doc = documents[0]
        return SubscriptionRecord.model_validate(
            {**decode_fields(doc.get("fields", {})), "id": _doc_id(doc["name"])}
        )

    async def update_subscription(
        self, subscription_id: str, patch: dict[str, Any]
    ) -> SubscriptionRecord:
        name = self._name(SUBSCRIPTIONS, subscription_id)
        try:
            current_doc = await self._get(name)
            if current_doc is None:
                raise StoreError(f"no subscription {subscription_id}")
            current = SubscriptionRecord.model_validate(
                {**decode_fields(current_doc.get("fields", {})), "id": subscription_id}
            )
            merged = SubscriptionRecord.model_validate({**current.model_dump(), **patch})
            document = merged.to_document()
            paths = [SubscriptionRecord.model_fields[field].alias or field for field in patch]
            await self._execute(self._documents.patch(
                name=name,
                updateMask_fieldPaths=paths,
                body={"fields": encode_fields({path: document[path] for path in paths})},
            ))
        except HttpError as exc:
            raise StoreError(f"update_subscription failed: {exc}") from exc
        return merged

    async def delete_subscription(self, subscription_id: str) -> None:
        request = self._documents.delete(name=self._name(SUBSCRIPTIONS, subscription_id))
        try:
            await self._execute(request)
        except HttpError as exc:
            if _status(exc) != 404:
                raise StoreError(f"delete_subscription failed: {exc}") from exc

    async def get_payment_settings(self) -> Optional[PaymentSettings]:
        try:
            doc = await self._get(self._name(CONFIG, "paymentSettings"))
        except HttpError as exc:
            raise StoreError(f"get_payment_settings failed: {exc}") from exc
        if doc is None:
            return None
        return PaymentSettings.model_validate(decode_fields(doc.get("fields", {})))

    async def _find_profile_doc(self, phone: str) -> Optional[dict]:
        documents = await self._run_query({
            "from": [{"collectionId": USERS}],
            "where": _field_filter("phoneNumber", phone),
            "limit": 1,
        })
        return documents[0] if documents else None

    async def get_caller_profile(self, phone: str) -> Optional[CallerProfile]:
        try:
            doc = await self._find_profile_doc(phone)
        except HttpError as exc:
            raise StoreError(f"get_caller_profile failed: {exc}") from exc
        if doc is None:
            return None
        return CallerProfile.model_validate(
            {**decode_fields(doc.get("fields", {})), "id": _doc_id(doc["name"])}
        )

    async def grant_entitlement(self, phone: str, entitlement: Entitlement) -> None:
        try:
            doc = await self._find_profile_doc(phone)
            name = doc["name"] if doc else self._name(USERS, phone_user_id(phone))
            if doc is None:
                await self._commit([{
                    "update": {"name": name, "fields": encode_fields({"phoneNumber": phone, "role": "user"})},
                    "updateMask": {"fieldPaths": ["phoneNumber", "role"]},
                }])

            if entitlement.kind == EntitlementKind.SUBSCRIPTION:
                write = {
                    "update": {"name": name, "fields": encode_fields({"subscription": {
                        "active": True,
                        "startedAt": entitlement.started_at,
                        "expiresAt": entitlement.expires_at,
                    }})},
                    "updateMask": {"fieldPaths": ["subscription"]},
                }
            else:
                write = {
                    "transform": {
                        "document": name,
                        "fieldTransforms": [{
                            "fieldPath": "unlockedJobs",
                            "appendMissingElements": {"values": [encode_value(entitlement.job_id)]},
                        }],
                    },
                }
            await self._commit([write])
        except HttpError as exc:
            raise StoreError(f"grant_entitlement failed: {exc}") from exc
        log.info("Granted %s entitlement", entitlement.kind.value)

    async def record_transaction(
        self, transaction: Transaction, *, idempotency_key: str = ""
    ) -> str:
        doc_id = idempotency_key or secrets.token_hex(10)
        document = transaction.model_copy(update={"idempotency_key": idempotency_key}).to_document()
        try:
            created = await self._create(TRANSACTIONS, doc_id, document)
        except HttpError as exc:
            raise StoreError(f"record_transaction failed: {exc}") from exc
        if not created:
            log.info("Transaction %s already recorded", doc_id)
        return doc_id

    async def save_contact_message(self, message: ContactMessage) -> str:
        doc_id = secrets.token_hex(10)
        try:
            await self._create(CONTACT_MESSAGES, doc_id, message.to_document())
        except HttpError as exc:
            raise StoreError(f"save_contact_message failed: {exc}") from exc
        return doc_id
