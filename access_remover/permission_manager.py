import logging
from googleapiclient.errors import HttpError

from access_remover.classifier import get_file_type
from access_remover.config import ROLE_MAP
from access_remover.models import (DriveItem, ErrorOutcome, FoundButBlocked, NoMatch,
                                   PermissionDetails, Removed, Skipped)

PERMISSION_FIELDS = 'nextPageToken, permissions(id, emailAddress, role, type)'

# Listing failures with these statuses mean the file is out of reach for this account.
INACCESSIBLE_STATUSES = (401, 403, 404)
# A delete rejected with these statuses means the grant is visible but not ours to revoke.
BLOCKED_STATUSES = (401, 403)


def _status_of(error):
    resp = getattr(error, 'resp', None)
    return getattr(resp, 'status', None)


def list_permissions(drive_service, file_id, supports_all_drives=False):
    """Returns every permission on the file, following pagination."""
    permissions = []
    page_token = None
    while True:
        params = {'fileId': file_id, 'fields': PERMISSION_FIELDS, 'pageToken': page_token}
        if supports_all_drives:
            params['supportsAllDrives'] = True
        response = drive_service.permissions().list(**params).execute()
        permissions.extend(PermissionDetails(**p) for p in response.get('permissions', []))
        page_token = response.get('nextPageToken')
        if not page_token:
            break
    return permissions


def find_target_permission(permissions, target_email):
    """Exact address match; the first matching grant wins."""
    for p in permissions:
        if p.emailAddress == target_email:
            return p
    return None


def process_file(drive_service, item: DriveItem, target_email, supports_all_drives=False):
    """
    Looks up target_email on a single file and tries to revoke it.
    Never raises: every failure is folded into the returned Outcome.
    """
    base = {
        'file_id': item.id, 'title': item.name, 'mime_type': item.mimeType,
        'file_type': get_file_type(item.mimeType), 'target_email': target_email,
        'link': item.webViewLink, 'owner_email': item.ownerEmail,
    }

    try:
        permissions = list_permissions(drive_service, item.id, supports_all_drives)
    except HttpError as e:
        if _status_of(e) in INACCESSIBLE_STATUSES:
            logging.warning(f"[SKIPPED] '{item.name}': Cannot access permissions ({_status_of(e)})")
            return Skipped(reason='Cannot access file permissions', **base)
        logging.error(f"[ERROR] Error accessing '{item.name}': {e}")
        return ErrorOutcome(message=f"Permission error: {e}", **base)
    except Exception as e:
        logging.error(f"[ERROR] Unexpected error listing permissions on '{item.name}': {e}")
        return ErrorOutcome(message=f"Permission error: {e}", **base)

    target = find_target_permission(permissions, target_email)
    if target is None:
        logging.info(f"{target_email} not found in '{item.name}' permissions")
        return NoMatch(**base)

    role = target.role or 'unknown'
    role_ui = ROLE_MAP.get(role, role.capitalize())
    try:
        params = {'fileId': item.id, 'permissionId': target.id}
        if supports_all_drives:
            params['supportsAllDrives'] = True
        drive_service.permissions().delete(**params).execute()
    except HttpError as e:
        if _status_of(e) in BLOCKED_STATUSES:
            logging.error(f"[BLOCKED] Found {target_email} as {role_ui} in '{item.name}' but cannot remove - insufficient permissions")
            logging.error(f"File link: {item.webViewLink}")
            return FoundButBlocked(
                role=role,
                message=f"Found {target_email} as {role}, but insufficient permissions to remove",
                **base,
            )
        logging.error(f"[ERROR] Failed to remove {target_email} from '{item.name}': {e}")
        return ErrorOutcome(message=f"Removal error: {e}", role=role, **base)
    except Exception as e:
        logging.error(f"[ERROR] Unexpected error removing {target_email} from '{item.name}': {e}")
        return ErrorOutcome(message=f"Removal error: {e}", role=role, **base)

    logging.info(f"[SUCCESS] Removed {target_email} ({role_ui}) from '{item.name}'")
    return Removed(role=role, **base)
