"""Authentication helpers"""
