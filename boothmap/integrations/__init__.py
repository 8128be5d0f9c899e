"""Google Sheets booth data: CSV parsing, aggregation and upstream fetching."""
