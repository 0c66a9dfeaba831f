"""Database and settings infrastructure"""
