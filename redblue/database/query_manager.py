from typing import Dict, Any, Tuple, List
import logging

logger = logging.getLogger(__name__)


class QueryManager:
    def __init__(self, table: str):
        self.table = table

    def select_one(self, where: Dict[str, Any]) -> Tuple[str, List[Any]]:
        where_clause, values = self._build_where_clause(where)
        query = f"SELECT * FROM {self.table} WHERE {where_clause} LIMIT 1;"
        return query, values

    def insert(self, data: Dict[str, Any]) -> Tuple[str, List[Any]]:
        keys = ", ".join(data.keys())
        placeholders = ", ".join(["%s"] * len(data))
        values = list(data.values())
        query = f"INSERT INTO {self.table} ({keys}) VALUES ({placeholders});"
        return query, values

    def _build_where_clause(self, where: Dict[str, Any]) -> Tuple[str, List[Any]]:
        clauses = []
        values = []
        for key, value in where.items():
            if value is None:
                clauses.append(f"{key} IS NULL")
            else:
                clauses.append(f"{key} = %s")
                values.append(value)
        return " AND ".join(clauses), values
