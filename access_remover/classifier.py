# access_remover/classifier.py

FILE_TYPE_MAP = {
    'application/vnd.google-apps.document': 'Google Docs',
    'application/vnd.google-apps.spreadsheet': 'Google Sheets',
    'application/vnd.google-apps.presentation': 'Google Slides',
    'application/vnd.google-apps.folder': 'Folders',
    'application/vnd.google-apps.form': 'Google Forms',
    'application/vnd.google-apps.drawing': 'Google Drawings',
    'application/vnd.google-apps.map': 'Google My Maps',
    'application/vnd.google-apps.site': 'Google Sites',
    'application/pdf': 'PDF Files'
}

MEDIA_PREFIXES = {
    'image/': 'Images',
    'video/': 'Videos',
    'audio/': 'Audio Files'
}


def get_file_type(mime_type):
    """Maps a Drive mime type to the category name used in reports."""
    mime_type = mime_type or ''
    for prefix, label in FILE_TYPE_MAP.items():
        if mime_type.startswith(prefix):
            return label
    for prefix, label in MEDIA_PREFIXES.items():
        if mime_type.startswith(prefix):
            return label
    return 'Other Files'
