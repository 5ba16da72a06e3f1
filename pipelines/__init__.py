"""
Analysis pipelines

CLI scripts for:
- tune: Credit decision tree resampling, grid search and final fit
- clean: Dollar-store product table cleaning
"""
