"""
deno-bot utilities package
"""
