"""Database access layer"""
