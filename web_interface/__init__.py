"""
Flask display surface for the Block Grader.
"""
