"""Domain modules - each area owns its repository, service, schemas and router"""
