import html
from datetime import datetime, timezone

from access_remover.config import ROLE_MAP
from access_remover.models import EmailStats, FileTypeStats, ManualReviewItem, Summary

MAX_FILES_PER_TYPE = 25


def generate_summary(outcomes, total_files, start_time, target_emails, end_time=None):
    """
    Aggregates the outcome log into per-email and per-file-type statistics.
    The log may be incomplete for very long runs (it is truncated while running).
    """
    by_email = {email: EmailStats() for email in target_emails}
    by_file_type = {}
    manual_review = []
    totals = {'removed': 0, 'found_but_blocked': 0, 'errors': 0, 'skipped': 0}

    for outcome in outcomes:
        type_stats = by_file_type.setdefault(outcome.file_type or 'Unknown', FileTypeStats())
        type_stats.processed += 1
        email_stats = by_email.get(outcome.target_email)
        if email_stats is not None:
            email_stats.files_found += 1

        if outcome.removed:
            type_stats.removed += 1
            totals['removed'] += 1
            if email_stats is not None:
                email_stats.removals += 1
        elif outcome.found_but_blocked:
            type_stats.found_but_blocked += 1
            totals['found_but_blocked'] += 1
            item = ManualReviewItem(
                title=outcome.title, email=outcome.target_email, file_type=outcome.file_type,
                role=outcome.matched_role, link=outcome.link,
                owner_email=outcome.owner_email or 'Unknown owner',
            )
            manual_review.append(item)
            if email_stats is not None:
                email_stats.found_but_blocked += 1
                email_stats.needs_manual_review.append(item)
        elif outcome.error:
            type_stats.errors += 1
            totals['errors'] += 1
            if email_stats is not None:
                email_stats.errors += 1
        elif outcome.skipped:
            type_stats.skipped += 1
            totals['skipped'] += 1
            if email_stats is not None:
                email_stats.skipped += 1

        if outcome.kind != 'no_match':
            type_stats.files.append(outcome)

    return Summary(
        total_files=total_files,
        start_time=start_time,
        end_time=end_time or datetime.now(timezone.utc),
        target_emails=list(target_emails),
        by_email=by_email,
        by_file_type=by_file_type,
        total_removals=totals['removed'],
        total_found_but_blocked=totals['found_but_blocked'],
        total_errors=totals['errors'],
        total_skipped=totals['skipped'],
        files_needing_manual_review=manual_review,
    )


def group_manual_review_by_email(summary):
    grouped = {}
    for item in summary.files_needing_manual_review:
        grouped.setdefault(item.email, []).append(item)
    return grouped


def build_subject(summary):
    subject = f"Drive Cleanup Complete - {summary.total_removals} emails removed from {summary.total_files} files"
    if summary.total_found_but_blocked > 0:
        subject += f" ({summary.total_found_but_blocked} need manual review)"
    return subject


def _role_label(role):
    if not role:
        return 'Unknown'
    return ROLE_MAP.get(role, role.capitalize())


def render_summary_text(summary):
    lines = [
        "DRIVE EMAIL CLEANUP - PROCESS COMPLETE",
        "",
        f"Total Files Processed:  {summary.total_files}",
        f"Successful Removals:    {summary.total_removals}",
        f"Found But Can't Remove: {summary.total_found_but_blocked}",
        f"Other Errors:           {summary.total_errors}",
        f"Skipped (No Access):    {summary.total_skipped}",
        f"Processing Time:        {summary.duration_minutes} minutes",
    ]

    grouped = group_manual_review_by_email(summary)
    if grouped:
        lines += ["", "FILES REQUIRING MANUAL REVIEW"]
        for email, items in grouped.items():
            lines.append(f"  {email}")
            for item in items:
                lines.append(f"    - {item.title} ({_role_label(item.role)}, owner: {item.owner_email}) {item.link}")

    lines += ["", "RESULTS BY TARGET EMAIL"]
    for email, stats in summary.by_email.items():
        lines.append(
            f"  {email}: found {stats.files_found}, removed {stats.removals}, "
            f"can't remove {stats.found_but_blocked}, errors {stats.errors}, "
            f"skipped {stats.skipped}, success rate {stats.success_rate}%"
        )
    return "\n".join(lines)


def render_summary_html(summary):
    esc = html.escape
    body = f"""
<div style="font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto;">
<h2 style="color: #1a73e8;">Drive Email Cleanup - Process Complete!</h2>
<div style="background: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
<h3 style="color: #137333; margin-top: 0;">Summary</h3>
<table style="width: 100%; border-collapse: collapse;">
<tr><td><strong>Total Files Processed:</strong></td><td>{summary.total_files}</td></tr>
<tr><td><strong>Successful Removals:</strong></td><td style="color: #137333;">{summary.total_removals}</td></tr>
<tr><td><strong>Found But Can't Remove:</strong></td><td style="color: #f9ab00;"><strong>{summary.total_found_but_blocked}</strong></td></tr>
<tr><td><strong>Other Errors:</strong></td><td style="color: #d93025;">{summary.total_errors}</td></tr>
<tr><td><strong>Skipped (No Access):</strong></td><td style="color: #9aa0a6;">{summary.total_skipped}</td></tr>
<tr><td><strong>Processing Time:</strong></td><td>{summary.duration_minutes} minutes</td></tr>
</table>
</div>
"""

    grouped = group_manual_review_by_email(summary)
    if grouped:
        body += f"""
<div style="background: #fef7e0; border: 2px solid #f9ab00; border-radius: 8px; padding: 20px; margin: 20px 0;">
<h3 style="color: #f9ab00; margin-top: 0;">Files Requiring Manual Review</h3>
<p><strong>{len(summary.files_needing_manual_review)} files</strong> contain target emails but couldn't be removed automatically.
You likely have <strong>view-only</strong> access to these files while the target emails have <strong>edit/comment</strong> access.</p>
<p><strong>Action Required:</strong> Contact the file owners or ask an admin to remove these permissions manually.</p>
"""
        for email, items in grouped.items():
            body += f'<h4 style="color: #d93025;">{esc(email)}</h4><ul>'
            for item in items:
                body += (
                    f'<li><strong><a href="{esc(item.link)}" target="_blank">{esc(item.title)}</a></strong>'
                    f'<br><span style="color: #5f6368;">{esc(item.file_type)} &bull; {esc(_role_label(item.role))} access'
                    f' &bull; Owner: {esc(item.owner_email)}</span></li>'
                )
            body += '</ul>'
        body += '</div>'

    body += '<h3 style="color: #1a73e8;">Results by Target Email</h3>'
    for email, stats in summary.by_email.items():
        body += f"""
<div style="border: 1px solid #dadce0; border-radius: 4px; padding: 15px; margin: 10px 0;">
<h4 style="margin: 0 0 10px 0;">{esc(email)}</h4>
<table style="width: 100%;">
<tr><td>Files Found:</td><td><strong>{stats.files_found}</strong></td></tr>
<tr><td>Successfully Removed:</td><td style="color: #137333;"><strong>{stats.removals}</strong></td></tr>
<tr><td>Found But Can't Remove:</td><td style="color: #f9ab00;"><strong>{stats.found_but_blocked}</strong></td></tr>
<tr><td>Other Errors:</td><td style="color: #d93025;">{stats.errors}</td></tr>
<tr><td>Skipped:</td><td style="color: #9aa0a6;">{stats.skipped}</td></tr>
<tr><td>Success Rate:</td><td><strong>{stats.success_rate}%</strong></td></tr>
</table>
"""
        if stats.needs_manual_review:
            body += f'<details><summary><strong>Files needing manual review ({len(stats.needs_manual_review)})</strong></summary><ul>'
            for item in stats.needs_manual_review:
                body += f'<li><a href="{esc(item.link)}" target="_blank">{esc(item.title)}</a> ({esc(_role_label(item.role))} access)</li>'
            body += '</ul></details>'
        body += '</div>'

    body += '<h3 style="color: #1a73e8;">Results by File Type</h3>'
    for file_type, stats in summary.by_file_type.items():
        body += f"""
<div style="background: #f8f9fa; border-left: 4px solid #1a73e8; padding: 15px; margin: 10px 0;">
<h4 style="margin: 0 0 10px 0; color: #1a73e8;">{esc(file_type)}</h4>
<p>Processed: <strong>{stats.processed}</strong> | Removed: <strong>{stats.removed}</strong> |
Can't Remove: <strong>{stats.found_but_blocked}</strong> | Errors: {stats.errors} | Skipped: {stats.skipped}</p>
"""
        if stats.files:
            body += '<details><summary><strong>Files with Actions</strong></summary><ul>'
            for outcome in stats.files[:MAX_FILES_PER_TYPE]:
                body += f'<li><strong>{esc(outcome.title)}</strong> ({esc(outcome.target_email)})'
                if outcome.removed:
                    body += ' - Removed'
                elif outcome.found_but_blocked:
                    body += f' - <a href="{esc(outcome.link)}" target="_blank">Manual Review Needed</a> ({esc(_role_label(outcome.matched_role))})'
                elif outcome.error:
                    body += ' - Error'
                elif outcome.skipped:
                    body += ' - Skipped'
                body += '</li>'
            if len(stats.files) > MAX_FILES_PER_TYPE:
                body += f'<li><em>... and {len(stats.files) - MAX_FILES_PER_TYPE} more files</em></li>'
            body += '</ul></details>'
        body += '</div>'

    body += f"""
<hr style="margin: 30px 0; border: none; border-top: 1px solid #dadce0;">
<p style="color: #5f6368; font-size: 14px;">Process completed at {summary.end_time.strftime("%Y-%m-%d %H:%M:%S %Z")}</p>
</div>
"""
    return body
