# Data models and relational schema
