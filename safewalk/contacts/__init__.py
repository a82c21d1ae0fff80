"""
contacts — Emergency contact book and user profile.
"""
