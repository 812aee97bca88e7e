"""File-backed storage"""
