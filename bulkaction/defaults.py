# bulkaction/defaults.py
"""Default settings - no imports to avoid circular dependencies."""

settings = {
    'default_batch_size': 1000,
    'default_db_type': 'postgres',
    'odbc_driver_name': 'ODBC Driver 18 for SQL Server',
    'copy_null_string': '\\N',  # NULL marker for COPY ... FORMAT csv
    'logging': {
        'directory': './logs',
        'level': 'INFO',
        'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        'timestamp_format': '%Y-%m-%d %H:%M:%S',
        'filename_format': '%Y%m%d_%H%M%S',  # Set to '' for single log file (no timestamp)
        'split_errors': True,
        'console': True,
    }
}
