"""Discovery, pagination and reporting of resolved issues."""
