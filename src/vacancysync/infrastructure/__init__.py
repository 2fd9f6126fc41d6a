"""Infrastructure adapters: files, workbooks, HTTP, logging, config."""
