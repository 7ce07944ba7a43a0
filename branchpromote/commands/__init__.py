"""
Command modules for branchpromote CLI.
"""
