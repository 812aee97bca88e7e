"""LMeve corporation management backend"""
