"""
History Manager for AllCalc
Manages per-user calculation history
"""
from database import Database

class HistoryManager:
    def __init__(self, db=None):
        self.db = db if db is not None else Database()

    def add_calculation(self, user_id, expression, result, mode="Standard"):
        """Add a calculation to a user's history"""
        return self.db.add_calculation(user_id, expression, result, mode)

    def get_calculation_history(self, user_id, limit=50):
        """Get calculation history as (id, expression, result, timestamp) rows"""
        return self.db.get_calculations(user_id, limit)

    def clear_calculation_history(self, user_id):
        """Clear all calculation history of a user"""
        return self.db.clear_history(user_id)

    def stream(self, user_id, after_id=None, limit=50):
        """Yield history records newest first.

        A reader that reconnects passes the highest id it has seen as
        ``after_id`` and receives the next ``limit`` records added since;
        repeating with the new highest id delivers the rest.
        """
        for calc_id, expression, result, timestamp in self.db.get_calculations(
                user_id, limit, after_id=after_id):
            yield {
                'id': calc_id,
                'expression': expression,
                'result': result,
                'timestamp': timestamp
            }

