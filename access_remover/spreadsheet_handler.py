import logging
import os
from datetime import datetime

import pandas as pd
from openpyxl import load_workbook
from openpyxl.formatting.rule import FormulaRule
from openpyxl.styles import PatternFill

from access_remover.config import ROLE_MAP

STATUS_LABELS = {
    'removed': 'REMOVED',
    'found_but_blocked': 'MANUAL_REVIEW',
    'skipped': 'SKIPPED',
    'error': 'ERROR',
    'no_match': 'NOT_FOUND'
}

OUTCOME_COLUMN_ORDER = ['Target Email', 'Status', 'Item Name', 'Item ID', 'File Type', 'Mime Type', 'Role', 'Owner', 'Details', 'Google Drive URL']


def outcomes_to_rows(outcomes):
    rows = []
    for o in outcomes:
        role = o.matched_role
        rows.append({
            'Target Email': o.target_email,
            'Status': STATUS_LABELS.get(o.kind, o.kind.upper()),
            'Item Name': o.title,
            'Item ID': o.file_id,
            'File Type': o.file_type,
            'Mime Type': o.mime_type,
            'Role': ROLE_MAP.get(role, str(role).capitalize()) if role else '',
            'Owner': o.owner_email or '',
            'Details': getattr(o, 'message', None) or getattr(o, 'reason', None) or '',
            'Google Drive URL': o.link
        })
    return rows


def write_outcomes_to_csv(outcomes, filename):
    """Writes the outcome log to a CSV archive. Returns True on success, False on failure."""
    if not outcomes:
        logging.warning("No outcomes to write to CSV archive.")
        return True
    try:
        df = pd.DataFrame(outcomes_to_rows(outcomes)).reindex(columns=OUTCOME_COLUMN_ORDER)
        df.to_csv(filename, index=False, encoding='utf-8')
        logging.info(f"Outcome log successfully written to {filename}")
        return True
    except Exception as e:
        logging.error(f"Failed to write outcome CSV to {filename}: {e}")
        return False


def add_formatting_to_sheet(filename):
    """Adds an auto-filter and status colouring to the outcome workbook."""
    try:
        wb = load_workbook(filename)
        ws = wb.active
        ws.auto_filter.ref = ws.dimensions

        fill_removed = PatternFill(start_color="FFD8E9BB", end_color="FFD8E9BB", fill_type="solid")
        fill_review = PatternFill(start_color="FFFFEB9C", end_color="FFFFEB9C", fill_type="solid")
        fill_error = PatternFill(start_color="FFFFC7CE", end_color="FFFFC7CE", fill_type="solid")

        full_range = f'A2:J{max(ws.max_row, 2)}'
        ws.conditional_formatting.add(full_range, FormulaRule(formula=['=$B2="REMOVED"'], fill=fill_removed))
        ws.conditional_formatting.add(full_range, FormulaRule(formula=['=$B2="MANUAL_REVIEW"'], fill=fill_review))
        ws.conditional_formatting.add(full_range, FormulaRule(formula=['=$B2="ERROR"'], fill=fill_error))

        for row in range(2, ws.max_row + 1):
            cell = ws.cell(row=row, column=10)
            if cell.value:
                cell.hyperlink = cell.value
                cell.style = "Hyperlink"

        wb.save(filename)
        logging.info(f"Successfully added auto-filter and formatting to {filename}")
    except Exception as e:
        logging.error(f"Could not add formatting to {filename}. Reason: {e}")
        # Non-critical; the unformatted workbook is still usable.


def write_outcomes_to_excel(outcomes, filename):
    """Writes the outcome log to an Excel workbook, manual-review rows first."""
    if not outcomes:
        logging.warning("No outcomes to write to Excel report.")
        return True
    try:
        df = pd.DataFrame(outcomes_to_rows(outcomes)).reindex(columns=OUTCOME_COLUMN_ORDER)
        df['_review_first'] = df['Status'] != 'MANUAL_REVIEW'
        df = df.sort_values(['_review_first', 'Target Email'], kind='stable').drop(columns=['_review_first'])
        df.to_excel(filename, index=False, engine='openpyxl')
        add_formatting_to_sheet(filename)
        return True
    except Exception as e:
        logging.error(f"Failed to write report to Excel file {filename}: {e}")
        return False


def save_run_reports(outcomes, reports_dir, archives_dir):
    """Writes the CSV archive and the Excel report for a finished run. Returns the paths written."""
    os.makedirs(reports_dir, exist_ok=True)
    os.makedirs(archives_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    written = []
    csv_path = os.path.join(archives_dir, f"{timestamp}_cleanup_outcomes.csv")
    if outcomes and write_outcomes_to_csv(outcomes, csv_path):
        written.append(csv_path)
    excel_path = os.path.join(reports_dir, f"{timestamp}_manual_review.xlsx")
    if outcomes and write_outcomes_to_excel(outcomes, excel_path):
        written.append(excel_path)
    return written
