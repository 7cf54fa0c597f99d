import os, logging, mysql.connector
from dotenv import load_dotenv
load_dotenv()

logger = logging.getLogger(__name__)

def get_conn():
    return mysql.connector.connect(
        host=os.getenv("DB_HOST","127.0.0.1"),
        port=int(os.getenv("DB_PORT","3306")),
        user=os.getenv("DB_USER","root"),
        password=os.getenv("DB_PASS","pass1234"),
        database=os.getenv("DB_NAME","lendify"),
        autocommit=False,
    )

# One CREATE per collection. loan_records keeps no foreign keys: a loan
# outlives the item and the borrower it was taken from.
SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS categories (
        id INT AUTO_INCREMENT PRIMARY KEY,
        name VARCHAR(255) NOT NULL
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS items (
        id INT AUTO_INCREMENT PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        description TEXT NULL,
        image_url MEDIUMTEXT NULL,
        purchase_date DATE NULL,
        category_id INT NULL,
        quantity INT NOT NULL DEFAULT 0
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS units (
        id INT AUTO_INCREMENT PRIMARY KEY,
        name VARCHAR(255) NOT NULL
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id INT AUTO_INCREMENT PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        unit_id INT NULL
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS admins (
        id INT AUTO_INCREMENT PRIMARY KEY,
        username VARCHAR(100) NOT NULL UNIQUE,
        password VARCHAR(255) NOT NULL
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS loan_records (
        id INT AUTO_INCREMENT PRIMARY KEY,
        item_id INT NOT NULL,
        item_name VARCHAR(255) NOT NULL,
        item_image MEDIUMTEXT NULL,
        borrower_id INT NULL,
        borrower_name VARCHAR(255) NOT NULL,
        borrow_date DATETIME NOT NULL,
        return_date DATETIME NULL,
        status VARCHAR(16) NOT NULL DEFAULT 'borrowed',
        purpose TEXT NULL,
        expected_duration INT NULL,
        INDEX idx_loan_item (item_id),
        INDEX idx_loan_borrow_date (borrow_date)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
)

def ensure_schema(conn):
    """
    Make sure the six collections exist.
    """
    cur = conn.cursor()
    try:
        for ddl in SCHEMA:
            cur.execute(ddl)
        conn.commit()
        logger.info("schema ready (%d tables)", len(SCHEMA))
    finally:
        cur.close()
