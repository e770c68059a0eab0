"""Seed data for `flask db-reset`."""
from arena import db
from arena.models import Challenge, User
from arena.services.games.entities import ChallengeType, Difficulty

SEED_USERS = ['testuser1', 'testuser2', 'testuser3']

DEFAULT_CHALLENGES = [
    # EASY
    dict(title='Basic Sum', description='Simple arithmetic', question='What is 15 + 27?',
         type=ChallengeType.MULTIPLE_CHOICE, difficulty=Difficulty.EASY,
         options=['40', '42', '44', '46'], correct_answer='42', explanation='15 + 27 = 42',
         time_limit=30, base_score=100, tags=['math', 'sum', 'basic']),
    dict(title='Logic Sequence', description='Find the next number in the sequence', question='2, 4, 6, 8, ?',
         type=ChallengeType.MULTIPLE_CHOICE, difficulty=Difficulty.EASY,
         options=['9', '10', '11', '12'], correct_answer='10',
         explanation='The sequence is consecutive even numbers',
         time_limit=45, base_score=120, tags=['logic', 'sequence', 'numbers']),
    dict(title='Halves', description='Simple division', question='What is half of 64?',
         type=ChallengeType.OPEN_ANSWER, difficulty=Difficulty.EASY,
         correct_answer='32', explanation='64 / 2 = 32',
         time_limit=30, base_score=100, tags=['math', 'division']),
    dict(title='Odd One Out', description='Spot the pattern', question='1, 3, 5, 7, ?',
         type=ChallengeType.SEQUENCE, difficulty=Difficulty.EASY,
         correct_answer='9', explanation='Consecutive odd numbers',
         time_limit=30, base_score=100, tags=['sequence', 'numbers']),
    dict(title='Boolean Basics', description='Truth tables', question='What is True AND False?',
         type=ChallengeType.MULTIPLE_CHOICE, difficulty=Difficulty.EASY,
         options=['True', 'False'], correct_answer='False',
         explanation='AND is only true when both operands are true',
         time_limit=30, base_score=100, tags=['logic', 'boolean']),
    # MEDIUM
    dict(title='Factorial', description='Compute the factorial of a number', question='What is the factorial of 5?',
         type=ChallengeType.MULTIPLE_CHOICE, difficulty=Difficulty.MEDIUM,
         options=['60', '120', '125', '150'], correct_answer='120',
         explanation='5! = 5 x 4 x 3 x 2 x 1 = 120',
         time_limit=60, base_score=200, tags=['math', 'factorial']),
    dict(title='Algorithm Complexity', description='Big-O notation',
         question='What is the average time complexity of quicksort?',
         type=ChallengeType.MULTIPLE_CHOICE, difficulty=Difficulty.MEDIUM,
         options=['O(n)', 'O(n log n)', 'O(n^2)', 'O(log n)'], correct_answer='O(n log n)',
         explanation='Quicksort averages O(n log n); its worst case is O(n^2)',
         time_limit=90, base_score=250, tags=['algorithms', 'complexity', 'sorting']),
    dict(title='Powers of Two', description='Binary intuition', question='What is 2^10?',
         type=ChallengeType.OPEN_ANSWER, difficulty=Difficulty.MEDIUM,
         correct_answer='1024', explanation='2^10 = 1024',
         time_limit=60, base_score=200, tags=['math', 'binary']),
    dict(title='Squares', description='Find the next number in the sequence', question='1, 4, 9, 16, 25, ?',
         type=ChallengeType.SEQUENCE, difficulty=Difficulty.MEDIUM,
         correct_answer='36', explanation='Perfect squares: 6^2 = 36',
         time_limit=60, base_score=200, tags=['sequence', 'squares']),
    dict(title='Binary Search', description='Search complexity',
         question='At most how many comparisons does binary search need on 1000 sorted items?',
         type=ChallengeType.OPEN_ANSWER, difficulty=Difficulty.MEDIUM,
         correct_answer='10', explanation='ceil(log2(1000)) = 10',
         time_limit=90, base_score=250, tags=['algorithms', 'search']),
    # HARD
    dict(title='Towers of Hanoi', description='Counting the minimum moves',
         question='How many moves are needed at minimum to solve the Towers of Hanoi with 4 discs?',
         type=ChallengeType.OPEN_ANSWER, difficulty=Difficulty.HARD,
         correct_answer='15', explanation='Formula: 2^n - 1 with n=4, so 2^4 - 1 = 15',
         time_limit=120, base_score=400, tags=['recursion', 'towers-of-hanoi', 'algorithms'],
         hints=['Use the formula 2^n - 1', 'n is the number of discs']),
    dict(title='Dynamic Programming', description='Optimized Fibonacci',
         question='What is the 10th Fibonacci number? (starting from F(0)=0, F(1)=1)',
         type=ChallengeType.OPEN_ANSWER, difficulty=Difficulty.HARD,
         correct_answer='55', explanation='F(10) = 55. Sequence: 0,1,1,2,3,5,8,13,21,34,55',
         time_limit=150, base_score=450, tags=['fibonacci', 'dynamic-programming', 'sequences']),
    dict(title='Graph Edges', description='Complete graphs',
         question='How many edges does a complete graph with 8 vertices have?',
         type=ChallengeType.OPEN_ANSWER, difficulty=Difficulty.HARD,
         correct_answer='28', explanation='n(n-1)/2 = 8 x 7 / 2 = 28',
         time_limit=120, base_score=400, tags=['graphs', 'combinatorics']),
    dict(title='Subsets', description='Counting subsets',
         question='How many subsets does a set of 6 elements have?',
         type=ChallengeType.OPEN_ANSWER, difficulty=Difficulty.HARD,
         correct_answer='64', explanation='2^6 = 64, including the empty set',
         time_limit=120, base_score=400, tags=['combinatorics', 'sets']),
    dict(title='Heap Height', description='Binary heaps',
         question='What is the height of a binary heap holding 31 elements?',
         type=ChallengeType.OPEN_ANSWER, difficulty=Difficulty.HARD,
         correct_answer='4', explanation='A complete tree of height 4 holds 2^5 - 1 = 31 nodes',
         time_limit=120, base_score=400, tags=['data-structures', 'heaps']),
]


def seed_users(password='password'):
    users = []
    for username in SEED_USERS:
        user = User(username=username, email=f'{username}@example.com')
        user.set_password(password)
        db.session.add(user)
        users.append(user)
    db.session.commit()
    return users


def seed_challenges():
    challenges = [Challenge(**fields) for fields in DEFAULT_CHALLENGES]
    db.session.add_all(challenges)
    db.session.commit()
    return challenges
