"""
Core modules: the remote row store, the local mirror, authentication, connectivity, the
offline sync queue and the dashboard, category and account controllers.
"""
