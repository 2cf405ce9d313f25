"""
Services package for the Dungeon Encounter Engine.

Provides the reference dungeon data store and the enemy skill rule oracle.
"""
