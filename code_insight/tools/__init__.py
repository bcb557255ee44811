"""
Adapters for external tools (eslint, stylelint, npm, depcheck, lighthouse).
"""
