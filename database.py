"""
Database Manager for AllCalc
Handles SQLite storage of per-user calculation history
"""
import sqlite3
from datetime import datetime
import config

class Database:
    def __init__(self, db_path=config.DB_PATH):
        self.db_path = db_path
        self.init_database()

    def get_connection(self):
        """Create and return a database connection"""
        return sqlite3.connect(self.db_path)

    def init_database(self):
        """Initialize database tables"""
        conn = self.get_connection()
        cursor = conn.cursor()

        # Calculations history table
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS calculations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                expression TEXT NOT NULL,
                result TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
        ''')

        # Migration: Add mode column to calculations table if it doesn't exist
        cursor.execute("PRAGMA table_info(calculations)")
        calc_columns = [column[1] for column in cursor.fetchall()]
        if 'mode' not in calc_columns:
            cursor.execute('ALTER TABLE calculations ADD COLUMN mode TEXT DEFAULT "Standard"')
            print("Database migrated: Added mode column to calculations")

        cursor.execute('''
            CREATE INDEX IF NOT EXISTS idx_calculations_user
            ON calculations (user_id, id)
        ''')

        conn.commit()
        conn.close()

    def add_calculation(self, user_id, expression, result, mode="Standard"):
        """Add calculation to a user's history, returns the new row id"""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO calculations (user_id, expression, result, timestamp, mode)
            VALUES (?, ?, ?, ?, ?)
        ''', (user_id, expression, result, timestamp, mode))
        conn.commit()
        calc_id = cursor.lastrowid
        conn.close()
        return calc_id

    def get_calculations(self, user_id, limit=config.MAX_HISTORY_ITEMS, after_id=None):
        """Retrieve a user's calculation history, newest first.

        With ``after_id`` the page starts right after that id and moves
        forward, so a reader paging by its highest seen id misses nothing.
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        query = '''
            SELECT id, expression, result, timestamp FROM calculations
            WHERE user_id = ?
        '''
        params = [user_id]

        if after_id is not None:
            query += ' AND id > ? ORDER BY id ASC LIMIT ?'
            params.append(after_id)
        else:
            query += ' ORDER BY id DESC LIMIT ?'
        params.append(limit)

        cursor.execute(query, params)
        calculations = cursor.fetchall()
        if after_id is not None:
            calculations.reverse()
        conn.close()
        return calculations

    def clear_history(self, user_id):
        """Delete every calculation of a user, returns the number removed"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute('DELETE FROM calculations WHERE user_id = ?', (user_id,))
        deleted = cursor.rowcount
        conn.commit()
        conn.close()
        return deleted
