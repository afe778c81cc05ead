import logging
from googleapiclient.errors import HttpError

from access_remover.classifier import get_file_type
from access_remover.scanner import build_search_query


def check_drive_access(drive_service):
    """Lists a handful of recent files to prove the Drive API is reachable."""
    logging.info("Testing Drive API v3 access...")
    try:
        response = drive_service.files().list(
            pageSize=5, fields='files(id, name, mimeType)', orderBy='modifiedTime desc'
        ).execute()
    except HttpError as e:
        logging.error(f"Drive API v3 test failed: {e}")
        return {'success': False, 'error': str(e)}

    files = response.get('files', [])
    logging.info(f"Drive API v3 working - Found {len(files)} recent files")
    for index, item in enumerate(files, start=1):
        logging.info(f"{index}. '{item.get('name')}' ({get_file_type(item.get('mimeType'))})")
    if not files:
        logging.warning("No files found - check your Drive access")
    return {'success': True, 'file_count': len(files)}


def preview_search(drive_service, email, page_size=10, include_all_drives=False):
    """
    Dry run of the search a scan would perform for one target.
    Reports each file and the role the target holds on it, without changing anything.
    """
    logging.info(f"Testing search for files shared with: {email}")
    params = {
        'q': build_search_query(email),
        'pageSize': page_size,
        'fields': 'files(id, name, mimeType, permissions(emailAddress, role))',
        'orderBy': 'modifiedTime desc',
    }
    if include_all_drives:
        params['includeItemsFromAllDrives'] = True
        params['supportsAllDrives'] = True
    try:
        response = drive_service.files().list(**params).execute()
    except HttpError as e:
        logging.error(f"Email search test failed: {e}")
        return {'success': False, 'error': str(e), 'email': email, 'files': []}

    files = []
    for item in response.get('files', []):
        target = next((p for p in item.get('permissions', []) if p.get('emailAddress') == email), None)
        files.append({
            'id': item['id'],
            'name': item.get('name'),
            'file_type': get_file_type(item.get('mimeType')),
            'role': target.get('role') if target else None,
        })

    logging.info(f"Found {len(files)} files shared with {email}")
    for index, f in enumerate(files, start=1):
        role = f" - {email} has {f['role']} access" if f['role'] else ''
        logging.info(f"{index}. '{f['name']}' ({f['file_type']}){role}")
    if not files:
        logging.info(f"No files found shared with {email}; it may already be removed, or never had access")
    return {'success': True, 'email': email, 'file_count': len(files), 'files': files}


def run_diagnostics(drive_service, target_emails, include_all_drives=False):
    """Checks connectivity, configuration and search before a real run."""
    results = {'drive_api': False, 'emails_configured': False, 'email_search': False, 'ready': False}

    logging.info("1. Testing Drive API v3...")
    results['drive_api'] = check_drive_access(drive_service)['success']

    logging.info("2. Checking email configuration...")
    if target_emails:
        logging.info(f"Found {len(target_emails)} target email(s): {', '.join(target_emails)}")
        results['emails_configured'] = True
    else:
        logging.error("No target emails configured")

    if results['emails_configured']:
        logging.info("3. Testing email search...")
        results['email_search'] = preview_search(drive_service, target_emails[0],
                                                 include_all_drives=include_all_drives)['success']
    else:
        logging.info("3. Skipping email search test (no emails configured)")

    logging.info("Note: files where you only have limited access may not be returned by the search.")

    results['ready'] = results['drive_api'] and results['emails_configured'] and results['email_search']
    if results['ready']:
        logging.info("ALL SYSTEMS GO! Run the start command to begin the cleanup process.")
    else:
        logging.warning("SETUP INCOMPLETE. Fix the issues above before starting a run.")
    return results
