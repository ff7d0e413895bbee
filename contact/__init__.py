"""
Contact Submissions App

Operator triage of contact form submissions held in the remote store:
- Filtered, paginated listing (status, free-text search, date range)
- Status transitions (unread, read, replied, archived) and permanent delete
- Dashboard statistics (totals, unread/replied, last 24 hours / 7 days)
"""
