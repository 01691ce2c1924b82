from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from app.onboarding.encryption import FieldCipher
from app.onboarding.types import FORM_DATA_FIELDS, Method, Status, Subsidiary


def as_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_object_id(value: Any) -> ObjectId | None:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value or "").strip())
    except (InvalidId, TypeError):
        return None


class SchemaError(ValueError):
    pass


_ENUM_FIELDS = {"status": Status, "method": Method, "subsidiary": Subsidiary}


def validate_fields(fields: dict[str, Any], *, subsidiary: str | None) -> None:
    """Reject values the onboarding document schema does not allow."""
    for name, enum_cls in _ENUM_FIELDS.items():
        if name in fields:
            try:
                enum_cls(fields[name])
            except ValueError as e:
                raise SchemaError(f"Invalid {name}: {fields[name]!r}") from e

    form_fields = set(FORM_DATA_FIELDS.values())
    for name in form_fields.intersection(fields):
        if fields[name] is None:
            continue
        if not isinstance(fields[name], dict):
            raise SchemaError(f"{name} must be an object")
        if subsidiary is None or FORM_DATA_FIELDS[Subsidiary(subsidiary)] != name:
            raise SchemaError(f"{name} does not belong to subsidiary {subsidiary}")

    if "employeeNumber" in fields and fields["employeeNumber"] is not None:
        if not isinstance(fields["employeeNumber"], str) or not fields["employeeNumber"].strip():
            raise SchemaError("employeeNumber must be a non-empty string")


class OnboardingRepository:
    """Document access for onboardings.

    Status-changing writes go through ``conditional_update`` so two racing
    transitions cannot both apply: the filter pins the status (and optionally
    the document version) that the caller's guards were evaluated against.

    Sensitive form values are encrypted on the way in and decrypted on the way
    out, so callers only ever see plaintext.
    """

    def __init__(self, db, cipher: FieldCipher):
        self._db = db
        self._cipher = cipher
        self.collection = db.onboardings

    def ensure_indexes(self) -> None:
        col = self.collection
        col.create_index(
            [("subsidiary", ASCENDING), ("employeeNumber", ASCENDING)],
            unique=True,
            partialFilterExpression={"employeeNumber": {"$type": "string"}},
            name="onboardings_subsidiary_employeeNumber_unique",
        )
        col.create_index([("subsidiary", ASCENDING), ("email", ASCENDING)], name="onboardings_subsidiary_email")
        col.create_index([("invite.tokenHash", ASCENDING)], name="onboardings_invite_tokenHash")
        col.create_index(
            [("subsidiary", ASCENDING), ("status", ASCENDING), ("createdAt", DESCENDING)],
            name="onboardings_subsidiary_status_createdAt",
        )

    def find_by_id(self, onboarding_id: Any) -> dict[str, Any] | None:
        oid = to_object_id(onboarding_id)
        if oid is None:
            return None
        return self._cipher.decrypt_forms(self.collection.find_one({"_id": oid}))

    def find_by_invite_hash(self, token_hash: str, *, onboarding_id: Any = None) -> dict[str, Any] | None:
        query: dict[str, Any] = {"method": Method.DIGITAL.value, "invite.tokenHash": token_hash}
        if onboarding_id is not None:
            oid = to_object_id(onboarding_id)
            if oid is None:
                return None
            query["_id"] = oid
        return self._cipher.decrypt_forms(self.collection.find_one(query))

    def find_by_email(self, subsidiary: str, email: str) -> dict[str, Any] | None:
        return self._cipher.decrypt_forms(self.collection.find_one({"subsidiary": subsidiary, "email": email}))

    def employee_number_taken(self, subsidiary: str, employee_number: str, *, exclude_id: Any) -> bool:
        query = {"subsidiary": subsidiary, "employeeNumber": employee_number, "_id": {"$ne": to_object_id(exclude_id)}}
        return self.collection.count_documents(query, limit=1) > 0

    def insert(self, doc: dict[str, Any]) -> dict[str, Any]:
        validate_fields(doc, subsidiary=doc.get("subsidiary"))
        doc.setdefault("version", 1)
        result = self.collection.insert_one(self._cipher.encrypt_forms(doc))
        doc["_id"] = result.inserted_id
        return doc

    def conditional_update(
        self,
        onboarding_id: Any,
        expected_status: Status | str,
        *,
        set_fields: dict[str, Any] | None = None,
        unset_fields: Iterable[str] = (),
        expected_version: int | None = None,
        subsidiary: str | None = None,
    ) -> dict[str, Any] | None:
        """Apply the patch only if the record is still in ``expected_status``.

        Returns the updated document, or ``None`` when no document matched.
        """
        oid = to_object_id(onboarding_id)
        if oid is None:
            return None

        set_fields = dict(set_fields or {})
        validate_fields(set_fields, subsidiary=subsidiary)

        query: dict[str, Any] = {"_id": oid, "status": Status(expected_status).value}
        if expected_version is not None:
            query["version"] = expected_version

        update: dict[str, Any] = {"$inc": {"version": 1}}
        if set_fields:
            update["$set"] = self._cipher.encrypt_forms(set_fields)
        unset = [f for f in unset_fields if f not in set_fields]
        if unset:
            update["$unset"] = {f: "" for f in unset}

        updated = self.collection.find_one_and_update(query, update, return_document=ReturnDocument.AFTER)
        return self._cipher.decrypt_forms(updated)

    def update_otp_if(
        self, onboarding_id: Any, otp_filter: dict[str, Any], update: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Atomically update OTP bookkeeping when ``otp_filter`` still matches."""
        oid = to_object_id(onboarding_id)
        if oid is None:
            return None
        query = {"_id": oid, **otp_filter}
        updated = self.collection.find_one_and_update(query, update, return_document=ReturnDocument.AFTER)
        return self._cipher.decrypt_forms(updated)

    def delete(self, onboarding_id: Any, *, expected_status: Status | None = None) -> bool:
        oid = to_object_id(onboarding_id)
        if oid is None:
            return False
        query: dict[str, Any] = {"_id": oid}
        if expected_status is not None:
            query["status"] = expected_status.value
        return self.collection.delete_one(query).deleted_count == 1

    def list(
        self,
        query: dict[str, Any],
        *,
        sort_by: str = "createdAt",
        sort_dir: int = DESCENDING,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[dict[str, Any]], int]:
        total = self.collection.count_documents(query)
        cursor = self.collection.find(query).sort([(sort_by, sort_dir), ("_id", sort_dir)]).skip(skip).limit(limit)
        return [self._cipher.decrypt_forms(doc) for doc in cursor], total
