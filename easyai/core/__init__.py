"""
Core components for easyai
"""
