"""Services for branch detection, ticket correlation and time logging."""
