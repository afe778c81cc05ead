import os
import logging
import httplib2

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from google.auth.exceptions import RefreshError
import google_auth_httplib2  # Import the authorization bridge

SCOPES = ['https://www.googleapis.com/auth/drive']
TOKEN_FILENAME = 'token.json'
CREDENTIALS_FILENAME = 'credentials_DeskApp.json'


def _token_file(credentials_dir):
    return os.path.join(credentials_dir, TOKEN_FILENAME)


def _load_credentials(credentials_dir):
    token_file = _token_file(credentials_dir)
    credentials_file = os.path.join(credentials_dir, CREDENTIALS_FILENAME)

    creds = None
    if os.path.exists(token_file):
        try:
            creds = Credentials.from_authorized_user_file(token_file, SCOPES)
        except Exception:
            logging.warning(f"Corrupted token file at '{token_file}'. Deleting it.")
            os.remove(token_file)

    if creds and creds.valid:
        return creds

    if creds and creds.expired and creds.refresh_token:
        logging.info("Refreshing expired access token...")
        try:
            creds.refresh(Request())
            return creds
        except RefreshError:
            logging.warning("Failed to refresh token. Deleting invalid token.")
            os.remove(token_file)
        except Exception as e:
            logging.error(f"Unexpected error during token refresh: {e}")

    if not os.path.exists(credentials_file):
        logging.critical(f"FATAL: Client secrets file not found at '{credentials_file}'. Please set it up.")
        return None

    logging.info("No valid token found, starting new OAuth flow...")
    try:
        flow = InstalledAppFlow.from_client_secrets_file(credentials_file, SCOPES)
        creds = flow.run_local_server(port=0, timeout_seconds=120, prompt='select_account')
        with open(token_file, 'w') as token:
            token.write(creds.to_json())
        logging.info(f"Token saved to {token_file}")
        return creds
    except Exception as e:
        logging.error(f"\n---Authentication flow failed or timed out. (Error: {e})---\n")
        return None


def authenticate_and_get_service(credentials_dir='credentials'):
    """
    Handles the OAuth 2.0 flow.
    Returns a tuple: (drive_service, authenticated_user_email) or (None, None) on failure.
    """
    os.makedirs(credentials_dir, exist_ok=True)

    creds = _load_credentials(credentials_dir)
    if not creds:
        return None, None

    try:
        http_obj = httplib2.Http(cache=None)
        authed_http = google_auth_httplib2.AuthorizedHttp(creds, http=http_obj)
        service = build('drive', 'v3', http=authed_http, cache_discovery=False)

        about = service.about().get(fields='user').execute()
        user_email = about.get('user', {}).get('emailAddress')
        if not user_email:
            logging.error("Could not determine the authenticated user's email address.")
            return None, None
        logging.info(f"Authenticated successfully as: {user_email}")

        return service, user_email
    except Exception as e:
        logging.error(f"Failed to build Drive service or get user info: {e}")
        return None, None


def reset_authentication(credentials_dir='credentials'):
    """
    Deletes the cached token to force re-authentication on the next run.
    Returns True on success (or if the file did not exist), False on failure.
    """
    token_file = _token_file(credentials_dir)
    try:
        if os.path.exists(token_file):
            os.remove(token_file)
            logging.info(f"Authentication token deleted: {token_file}")
        else:
            logging.info("No authentication token to delete.")
        return True
    except Exception as e:
        logging.error(f"Failed to delete token file at {token_file}: {e}")
        return False
