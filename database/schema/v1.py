"""Key/value entries backing users, nonces, listings and rows."""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'kv_entries',
            'columns': [
                {'name': 'namespace', 'type': 'VARCHAR(64)', 'nullable': False},
                {'name': 'key', 'type': 'VARCHAR(512)', 'nullable': False},
                {'name': 'value', 'type': 'JSONB', 'nullable': False},
                {'name': 'version', 'type': 'INT8', 'default': '1', 'nullable': False},
                {'name': 'updated_at', 'type': 'TIMESTAMP WITH TIME ZONE', 'default': 'now()'}
            ],
            'primary_key': ['namespace', 'key'],
            'indexes': [
                {
                    'name': 'idx_kv_entries_namespace',
                    'columns': ['namespace']
                }
            ]
        }
    ],
    'migrations': []
}
