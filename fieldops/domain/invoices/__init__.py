"""Local invoice register"""
