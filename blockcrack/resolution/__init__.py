# Resolution package for blockcrack
"""
Record building and merging.

Turns block-list entries into DomainRecords and folds every
observation of the same digest into one record.
"""
