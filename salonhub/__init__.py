"""SalonHub API - multi-tenant salon billing backend"""
