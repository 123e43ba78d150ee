"""SLOX: a small class-based scripting language with an async tree-walking interpreter."""
