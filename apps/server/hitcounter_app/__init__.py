"""hitcounter service entrypoints."""
