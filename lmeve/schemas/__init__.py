"""Request and response schemas"""
