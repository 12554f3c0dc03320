"""Engine adapters.

Each module wraps one native driver. Modules are imported lazily by the
adapter registry so that a missing driver only affects its own engine.

Modules:
    postgresql, cockroachdb: asyncpg
    mysql, mariadb: aiomysql
    sqlite: aiosqlite
    mssql: aioodbc
    oracle: oracledb
    mongodb: pymongo
    firestore: google-cloud-firestore
    redis: redis-py
    dynamodb: boto3
    neo4j: neo4j
    cassandra: cassandra-driver
    clickhouse: clickhouse-connect
    elasticsearch: elasticsearch-py
"""
