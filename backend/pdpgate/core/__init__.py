"""Configuration, logging, metrics, database and error plumbing"""
