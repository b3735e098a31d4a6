"""Shared constants for workdesk."""

import re

# Collections (one change-notification topic each)
CLIENTS = "clients"
TASKS = "tasks"
EMPLOYEES = "employees"
INVOICES = "invoices"
PAYMENTS = "payments"
DOCUMENTS = "documents"
USER_ROLES = "user_roles"

COLLECTIONS = (CLIENTS, TASKS, EMPLOYEES, INVOICES, PAYMENTS, DOCUMENTS, USER_ROLES)

# Columns that must be unique within a collection
UNIQUE_COLUMNS = {
    INVOICES: ("invoice_number",),
    USER_ROLES: ("user_id",),
}

# Change event kinds
INSERT = "insert"
UPDATE = "update"
DELETE = "delete"
ANY_EVENT = "*"
ANY_EVENT_ALIAS = "any"  # Accepted in place of "*"

EVENT_KINDS = (INSERT, UPDATE, DELETE)

DATE_FORMAT = "%Y-%m-%d"
INVOICE_DATE_STAMP = "%Y%m%d"

# Object path segments
PATH_SEGMENT_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")
REPEATED_UNDERSCORES = re.compile(r"_+")
