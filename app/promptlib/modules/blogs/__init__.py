"""
Ministry blog: public index and post pages, admin drafting and publishing.
"""
